from __future__ import annotations
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from .iq import IqBand, resolve_from_sets
from .models import IqGrade, Payment, Question, Quiz, QuizAttempt
from .scoring import ScorableQuestion, build_question, is_passing, score_answers, score_percentage

logger = logging.getLogger(__name__)


class SubmissionError(Exception):
	pass


class QuizNotFoundError(SubmissionError):
	pass


class EmptyQuizError(SubmissionError):
	pass


class PremiumAccessRequired(SubmissionError):
	pass


@dataclass
class Submission:
	answers: Dict[str, str] = field(default_factory=dict)
	marked_for_review: List[str] = field(default_factory=list)
	time_spent_seconds: int = 0


def load_quiz_with_questions(db: Session, quiz_id: str) -> Quiz:
	quiz = (
		db.query(Quiz)
		.options(selectinload(Quiz.questions), selectinload(Quiz.subject))
		.filter(Quiz.id == quiz_id)
		.first()
	)
	if quiz is None:
		raise QuizNotFoundError(f"quiz {quiz_id} not found")
	return quiz


def load_iq_grades(db: Session, subject_id: Optional[str]) -> Tuple[List[IqBand], List[IqBand]]:
	# Two separate queries; the resolver decides which set wins
	subject_rows: List[IqGrade] = []
	if subject_id is not None:
		subject_rows = (
			db.query(IqGrade)
			.filter(IqGrade.subject_id == subject_id)
			.order_by(IqGrade.min_score_percentage.asc())
			.all()
		)
	global_rows = (
		db.query(IqGrade)
		.filter(IqGrade.subject_id.is_(None))
		.order_by(IqGrade.min_score_percentage.asc())
		.all()
	)
	return [IqBand.from_row(r) for r in subject_rows], [IqBand.from_row(r) for r in global_rows]


def persist_attempt(db: Session, attempt: QuizAttempt) -> str:
	db.add(attempt)
	try:
		db.commit()
	except SQLAlchemyError:
		db.rollback()
		logger.exception("failed to store attempt for quiz %s", attempt.quiz_id)
		raise
	db.refresh(attempt)
	return attempt.id


def has_premium_access(db: Session, user_id: str) -> bool:
	row = db.query(Payment).filter(Payment.user_id == user_id, Payment.status == "success").first()
	return row is not None


def ensure_quiz_access(db: Session, user_id: str, quiz: Quiz) -> None:
	if quiz.subject is not None and quiz.subject.is_premium and not has_premium_access(db, user_id):
		raise PremiumAccessRequired("premium access required for this subject")


def to_scorable(questions: List[Question]) -> List[ScorableQuestion]:
	return [
		build_question(q.id, q.question_type, q.options, q.correct_answer, scenario_id=q.scenario_id)
		for q in questions
	]


def submit_quiz(db: Session, user_id: str, quiz_id: str, submission: Submission) -> QuizAttempt:
	quiz = load_quiz_with_questions(db, quiz_id)
	ensure_quiz_access(db, user_id, quiz)
	total = len(quiz.questions)
	if total == 0:
		raise EmptyQuizError(f"quiz {quiz_id} has no questions")

	result = score_answers(to_scorable(quiz.questions), submission.answers)
	percentage = score_percentage(result.score, total)
	subject_bands, global_bands = load_iq_grades(db, quiz.subject_id)
	iq = resolve_from_sets(percentage, subject_bands, global_bands)

	attempt = QuizAttempt(
		user_id=user_id,
		quiz_id=quiz.id,
		answers=dict(submission.answers),
		marked_for_review=list(submission.marked_for_review),
		score=result.score,
		total_questions=total,
		passed=is_passing(result.score, total, quiz.pass_mark_percentage),
		iq_score=iq.iq_score if iq else None,
		iq_label=iq.iq_label if iq else None,
		time_spent_seconds=submission.time_spent_seconds,
		completed_at=datetime.utcnow(),
	)
	persist_attempt(db, attempt)
	logger.info(
		"attempt %s on quiz %s: %d/%d, iq=%s",
		attempt.id, quiz.id, result.score, total, attempt.iq_label,
	)
	return attempt


def review_attempt(attempt: QuizAttempt, quiz: Quiz) -> List[Dict[str, Any]]:
	"""Per-question breakdown of a stored attempt.

	Re-scores the stored answers with the current questions, so the result
	reflects later question edits; the attempt's own score is left as saved.
	"""
	answers = attempt.answers or {}
	scorable = to_scorable(quiz.questions)
	result = score_answers(scorable, answers)
	review: List[Dict[str, Any]] = []
	for row, q in zip(quiz.questions, scorable):
		review.append({
			"question_id": row.id,
			"question_text": row.question_text,
			"question_type": row.question_type,
			"scenario_id": row.scenario_id,
			"options": list(row.options or []),
			"your_answer": answers.get(row.id),
			"correct_answer": q.display_answer,
			"is_correct": result.per_question_correct[row.id],
			"marked_for_review": row.id in (attempt.marked_for_review or []),
			"explanation": row.explanation,
		})
	return review
