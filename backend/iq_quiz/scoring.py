"""
Quiz scoring.

Questions are turned into one of two variants before scoring: choice
questions (multiple choice and true/false) match the submitted text exactly,
fill-in-gap questions match any acceptable variation after trimming and
lowercasing. Everything here is pure and works on already-loaded data.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)

MULTIPLE_CHOICE = "multiple_choice"
TRUE_FALSE = "true_false"
FILL_IN_GAP = "fill_in_gap"
QUESTION_TYPES = (MULTIPLE_CHOICE, TRUE_FALSE, FILL_IN_GAP)
TRUE_FALSE_OPTIONS = ["True", "False"]


def normalize_gap_answer(text: str) -> str:
	return text.strip().lower()


@dataclass(frozen=True)
class ChoiceQuestion:
	id: str
	options: List[str]
	correct_answer: str
	question_type: str = MULTIPLE_CHOICE
	scenario_id: Optional[str] = None

	@property
	def display_answer(self) -> str:
		return self.correct_answer

	def is_correct(self, answer: str) -> bool:
		# Case-sensitive, no trimming
		return answer == self.correct_answer


@dataclass(frozen=True)
class FillGapQuestion:
	id: str
	acceptable_answers: List[str]
	scenario_id: Optional[str] = None
	question_type: str = field(default=FILL_IN_GAP, init=False)

	@property
	def primary_answer(self) -> str:
		return self.acceptable_answers[0] if self.acceptable_answers else ""

	@property
	def display_answer(self) -> str:
		return self.primary_answer

	def is_correct(self, answer: str) -> bool:
		submitted = normalize_gap_answer(answer)
		return any(submitted == normalize_gap_answer(a) for a in self.acceptable_answers)


ScorableQuestion = Union[ChoiceQuestion, FillGapQuestion]


@dataclass
class ScoreResult:
	score: int
	per_question_correct: Dict[str, bool]
	warnings: List[str] = field(default_factory=list)

	@property
	def total(self) -> int:
		return len(self.per_question_correct)


def build_question(
	question_id: str,
	question_type: str,
	options: Optional[Sequence[str]],
	correct_answer: str,
	scenario_id: Optional[str] = None,
) -> ScorableQuestion:
	"""Turn a stored question row into a scoring variant.

	Fill-in-gap rows keep their option list as the acceptable variations;
	the stored correct answer is only the display copy of the first one.
	Anything that is not fill-in-gap is scored by exact match, including
	types this module does not know about.
	"""
	opts = [str(o) for o in (options or [])]
	if question_type == FILL_IN_GAP:
		return FillGapQuestion(id=question_id, acceptable_answers=opts, scenario_id=scenario_id)
	return ChoiceQuestion(
		id=question_id,
		options=opts,
		correct_answer=correct_answer,
		question_type=question_type,
		scenario_id=scenario_id,
	)


def score_answers(questions: Sequence[ScorableQuestion], answers: Mapping[str, str]) -> ScoreResult:
	"""Count correct answers.

	A question missing from ``answers`` is incorrect. Order of ``questions``
	does not matter. Inputs are left untouched.
	"""
	per_question: Dict[str, bool] = {}
	warnings: List[str] = []
	score = 0
	for q in questions:
		if q.question_type not in QUESTION_TYPES:
			msg = f"question {q.id} has unknown type {q.question_type!r}; scored by exact match"
			logger.warning(msg)
			warnings.append(msg)
		answer = answers.get(q.id)
		correct = answer is not None and q.is_correct(answer)
		per_question[q.id] = correct
		if correct:
			score += 1
	return ScoreResult(score=score, per_question_correct=per_question, warnings=warnings)


def score_percentage(score: int, total: int) -> float:
	# Empty quiz
	if total <= 0:
		return 0.0
	return score * 100 / total


def is_passing(score: int, total: int, pass_mark_percentage: int) -> bool:
	if total <= 0:
		return False
	# Same as score / total * 100 >= pass mark, without float error at the boundary
	return score * 100 >= pass_mark_percentage * total
