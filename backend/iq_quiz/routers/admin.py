from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from .auth import admin_to_dict, get_current_admin, hash_password
from .payments import payment_to_dict, settings_to_dict
from .quizzes import attempt_to_dict, quiz_to_dict, subject_to_dict
from ..db import get_db
from ..models import Admin, IqGrade, Payment, PaymentSettings, Question, Quiz, QuizAttempt, Scenario, Subject
from ..scoring import FILL_IN_GAP, MULTIPLE_CHOICE, QUESTION_TYPES, TRUE_FALSE, TRUE_FALSE_OPTIONS


# Every route here needs an admin session
router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(get_current_admin)])
logger = logging.getLogger(__name__)


class AdminCreate(BaseModel):
	username: str
	password: str


class SubjectIn(BaseModel):
	name: Optional[str] = None
	description: Optional[str] = None
	is_premium: Optional[bool] = None
	theme_color: Optional[str] = None


class QuizIn(BaseModel):
	subject_id: Optional[str] = None
	title: Optional[str] = None
	description: Optional[str] = None
	pass_mark_percentage: Optional[int] = None
	time_limit_minutes: Optional[int] = None
	instant_feedback: Optional[bool] = None
	randomize_questions: Optional[bool] = None


class ScenarioIn(BaseModel):
	title: Optional[str] = None
	passage: Optional[str] = None
	order_index: Optional[int] = None


class QuestionIn(BaseModel):
	question_text: Optional[str] = None
	question_type: Optional[str] = None
	options: Optional[List[str]] = None
	correct_answer: Optional[str] = None
	explanation: Optional[str] = None
	scenario_id: Optional[str] = None


class IqGradeIn(BaseModel):
	subject_id: Optional[str] = None
	min_score_percentage: Optional[int] = None
	max_score_percentage: Optional[int] = None
	min_iq: Optional[int] = None
	max_iq: Optional[int] = None
	label: Optional[str] = None


class PaymentSettingsIn(BaseModel):
	membership_price: int
	split_code: Optional[str] = None


def scenario_to_dict(sc: Scenario) -> Dict[str, Any]:
	return {
		"id": sc.id,
		"quiz_id": sc.quiz_id,
		"title": sc.title,
		"passage": sc.passage,
		"order_index": sc.order_index,
		"created_at": sc.created_at,
	}


def question_to_dict(q: Question) -> Dict[str, Any]:
	return {
		"id": q.id,
		"quiz_id": q.quiz_id,
		"scenario_id": q.scenario_id,
		"question_text": q.question_text,
		"question_type": q.question_type,
		"options": list(q.options or []),
		"correct_answer": q.correct_answer,
		"explanation": q.explanation,
		"order_index": q.order_index,
		"created_at": q.created_at,
	}


def grade_to_dict(g: IqGrade) -> Dict[str, Any]:
	return {
		"id": g.id,
		"subject_id": g.subject_id,
		"subject": subject_to_dict(g.subject) if g.subject else None,
		"min_score_percentage": g.min_score_percentage,
		"max_score_percentage": g.max_score_percentage,
		"min_iq": g.min_iq,
		"max_iq": g.max_iq,
		"label": g.label,
		"created_at": g.created_at,
	}


def clean_question(question_type: str, options: Optional[List[str]], correct_answer: Optional[str]) -> Tuple[List[str], str]:
	"""Normalise an admin-entered question; raises ValueError when unusable."""
	if question_type == TRUE_FALSE:
		if correct_answer not in TRUE_FALSE_OPTIONS:
			raise ValueError("correct_answer must be 'True' or 'False'")
		return list(TRUE_FALSE_OPTIONS), correct_answer
	kept = [o for o in (options or []) if o and o.strip()]
	if question_type == FILL_IN_GAP:
		if not kept:
			raise ValueError("fill-in-gap questions need at least one acceptable answer")
		# The first variation is the one shown as "the" answer
		return kept, kept[0]
	if question_type == MULTIPLE_CHOICE:
		if len(kept) < 2:
			raise ValueError("multiple-choice questions need at least two options")
		if correct_answer not in kept:
			raise ValueError("correct_answer must be one of the options")
		return kept, correct_answer
	raise ValueError(f"question_type must be one of {list(QUESTION_TYPES)}")


def validate_band(min_pct: Any, max_pct: Any, min_iq: Any, max_iq: Any, label: Any) -> None:
	if None in (min_pct, max_pct, min_iq, max_iq) or not (label or "").strip():
		raise ValueError("min_score_percentage, max_score_percentage, min_iq, max_iq and label are required")
	if not (0 <= min_pct <= 100 and 0 <= max_pct <= 100):
		raise ValueError("score percentages must be between 0 and 100")
	if min_pct >= max_pct:
		raise ValueError("min_score_percentage must be lower than max_score_percentage")
	if min_iq >= max_iq:
		raise ValueError("min_iq must be lower than max_iq")


def _get_or_404(db: Session, model, row_id: str, what: str):
	row = db.get(model, row_id)
	if row is None:
		raise HTTPException(status_code=404, detail=f"{what} not found")
	return row


# ----- admins -----

@router.post("/create-admin", status_code=201)
def create_admin(req: AdminCreate, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	username = (req.username or "").strip()
	if len(username) < 3 or len(req.password or "") < 6:
		raise HTTPException(status_code=400, detail="username must be 3+ characters and password 6+ characters")
	if db.query(Admin).filter(Admin.username == username).first():
		raise HTTPException(status_code=409, detail="username already exists")
	row = Admin(username=username, password_hash=hash_password(req.password), is_super_admin=False, created_by_id=admin.id)
	db.add(row)
	db.commit()
	logger.info("admin %s created sub-admin %s", admin.username, username)
	return {"admin": admin_to_dict(row)}


@router.get("/admins")
def list_admins(db: Session = Depends(get_db)):
	return [admin_to_dict(a) for a in db.query(Admin).order_by(Admin.created_at.asc()).all()]


@router.delete("/admins/{admin_id}")
def delete_admin(admin_id: str, admin: Admin = Depends(get_current_admin), db: Session = Depends(get_db)):
	if admin_id == admin.id:
		raise HTTPException(status_code=400, detail="cannot delete your own account")
	db.delete(_get_or_404(db, Admin, admin_id, "Admin"))
	db.commit()
	return {"success": True}


# ----- subjects -----

@router.get("/subjects")
def list_subjects(db: Session = Depends(get_db)):
	return [subject_to_dict(s) for s in db.query(Subject).order_by(Subject.created_at.asc()).all()]


@router.post("/subjects", status_code=201)
def create_subject(req: SubjectIn, db: Session = Depends(get_db)):
	if not (req.name or "").strip():
		raise HTTPException(status_code=400, detail="name is required")
	row = Subject(**req.model_dump(exclude_none=True))
	db.add(row)
	db.commit()
	return subject_to_dict(row)


@router.patch("/subjects/{subject_id}")
def update_subject(subject_id: str, req: SubjectIn, db: Session = Depends(get_db)):
	row = _get_or_404(db, Subject, subject_id, "Subject")
	changes = req.model_dump(exclude_unset=True)
	if "name" in changes and not (changes["name"] or "").strip():
		raise HTTPException(status_code=400, detail="name is required")
	if any(changes.get(k) is None for k in ("is_premium", "theme_color") if k in changes):
		raise HTTPException(status_code=400, detail="only description can be cleared")
	for key, value in changes.items():
		setattr(row, key, value)
	db.commit()
	return subject_to_dict(row)


@router.delete("/subjects/{subject_id}")
def delete_subject(subject_id: str, db: Session = Depends(get_db)):
	db.delete(_get_or_404(db, Subject, subject_id, "Subject"))
	db.commit()
	return {"success": True}


# ----- quizzes -----

@router.get("/quizzes")
def list_quizzes(db: Session = Depends(get_db)):
	out = []
	for q in db.query(Quiz).options(selectinload(Quiz.subject)).order_by(Quiz.created_at.asc()).all():
		item = quiz_to_dict(q)
		item["subject"] = subject_to_dict(q.subject) if q.subject else None
		out.append(item)
	return out


@router.get("/quizzes/{quiz_id}")
def get_quiz(quiz_id: str, db: Session = Depends(get_db)):
	return quiz_to_dict(_get_or_404(db, Quiz, quiz_id, "Quiz"))


@router.post("/quizzes", status_code=201)
def create_quiz(req: QuizIn, db: Session = Depends(get_db)):
	if not req.subject_id or not (req.title or "").strip():
		raise HTTPException(status_code=400, detail="subject_id and title are required")
	_get_or_404(db, Subject, req.subject_id, "Subject")
	if req.pass_mark_percentage is not None and not 0 <= req.pass_mark_percentage <= 100:
		raise HTTPException(status_code=400, detail="pass_mark_percentage must be between 0 and 100")
	row = Quiz(**req.model_dump(exclude_none=True))
	db.add(row)
	db.commit()
	return quiz_to_dict(row)


@router.patch("/quizzes/{quiz_id}")
def update_quiz(quiz_id: str, req: QuizIn, db: Session = Depends(get_db)):
	row = _get_or_404(db, Quiz, quiz_id, "Quiz")
	changes = req.model_dump(exclude_unset=True)
	if any(changes.get(k) is None for k in ("subject_id", "title", "pass_mark_percentage", "instant_feedback", "randomize_questions") if k in changes):
		raise HTTPException(status_code=400, detail="only description and time_limit_minutes can be cleared")
	pass_mark = changes.get("pass_mark_percentage")
	if pass_mark is not None and not 0 <= pass_mark <= 100:
		raise HTTPException(status_code=400, detail="pass_mark_percentage must be between 0 and 100")
	if "subject_id" in changes:
		_get_or_404(db, Subject, changes["subject_id"], "Subject")
	for key, value in changes.items():
		setattr(row, key, value)
	db.commit()
	return quiz_to_dict(row)


@router.delete("/quizzes/{quiz_id}")
def delete_quiz(quiz_id: str, db: Session = Depends(get_db)):
	db.delete(_get_or_404(db, Quiz, quiz_id, "Quiz"))
	db.commit()
	return {"success": True}


# ----- scenarios -----

@router.get("/quizzes/{quiz_id}/scenarios")
def list_scenarios(quiz_id: str, db: Session = Depends(get_db)):
	quiz = _get_or_404(db, Quiz, quiz_id, "Quiz")
	return [scenario_to_dict(sc) for sc in quiz.scenarios]


@router.post("/quizzes/{quiz_id}/scenarios", status_code=201)
def create_scenario(quiz_id: str, req: ScenarioIn, db: Session = Depends(get_db)):
	quiz = _get_or_404(db, Quiz, quiz_id, "Quiz")
	if not (req.passage or "").strip():
		raise HTTPException(status_code=400, detail="passage is required")
	order_index = req.order_index if req.order_index is not None else len(quiz.scenarios)
	row = Scenario(quiz_id=quiz.id, title=req.title, passage=req.passage, order_index=order_index)
	db.add(row)
	db.commit()
	return scenario_to_dict(row)


@router.patch("/scenarios/{scenario_id}")
def update_scenario(scenario_id: str, req: ScenarioIn, db: Session = Depends(get_db)):
	row = _get_or_404(db, Scenario, scenario_id, "Scenario")
	changes = req.model_dump(exclude_unset=True)
	if "passage" in changes and not (changes["passage"] or "").strip():
		raise HTTPException(status_code=400, detail="passage is required")
	for key, value in changes.items():
		setattr(row, key, value)
	db.commit()
	return scenario_to_dict(row)


@router.delete("/scenarios/{scenario_id}")
def delete_scenario(scenario_id: str, db: Session = Depends(get_db)):
	row = _get_or_404(db, Scenario, scenario_id, "Scenario")
	# Questions stay in the quiz, ungrouped
	for q in list(row.questions):
		q.scenario_id = None
	db.delete(row)
	db.commit()
	return {"success": True}


# ----- questions -----

@router.get("/questions/{quiz_id}")
def list_questions(quiz_id: str, db: Session = Depends(get_db)):
	rows = db.query(Question).filter(Question.quiz_id == quiz_id).order_by(Question.order_index.asc()).all()
	return [question_to_dict(q) for q in rows]


def _check_scenario(db: Session, scenario_id: Optional[str], quiz_id: str) -> None:
	if scenario_id is None:
		return
	sc = db.get(Scenario, scenario_id)
	if sc is None or sc.quiz_id != quiz_id:
		raise HTTPException(status_code=400, detail="scenario_id does not belong to this quiz")


def _next_order_index(db: Session, quiz_id: str) -> int:
	last = db.query(func.max(Question.order_index)).filter(Question.quiz_id == quiz_id).scalar()
	return 0 if last is None else last + 1


@router.post("/quizzes/{quiz_id}/questions", status_code=201)
def create_question(quiz_id: str, req: QuestionIn, db: Session = Depends(get_db)):
	quiz = _get_or_404(db, Quiz, quiz_id, "Quiz")
	if not (req.question_text or "").strip() or not req.question_type:
		raise HTTPException(status_code=400, detail="question_text and question_type are required")
	if req.question_type not in QUESTION_TYPES:
		raise HTTPException(status_code=422, detail=f"question_type must be one of {list(QUESTION_TYPES)}")
	try:
		options, correct = clean_question(req.question_type, req.options, req.correct_answer)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	_check_scenario(db, req.scenario_id, quiz.id)
	row = Question(
		quiz_id=quiz.id,
		scenario_id=req.scenario_id,
		question_text=req.question_text,
		question_type=req.question_type,
		options=options,
		correct_answer=correct,
		explanation=req.explanation,
		order_index=_next_order_index(db, quiz.id),
	)
	db.add(row)
	db.commit()
	return question_to_dict(row)


@router.patch("/questions/{question_id}")
def update_question(question_id: str, req: QuestionIn, db: Session = Depends(get_db)):
	row = _get_or_404(db, Question, question_id, "Question")
	changes = req.model_dump(exclude_unset=True)
	question_type = changes.get("question_type", row.question_type)
	if question_type not in QUESTION_TYPES:
		raise HTTPException(status_code=422, detail=f"question_type must be one of {list(QUESTION_TYPES)}")
	try:
		options, correct = clean_question(
			question_type,
			changes.get("options", row.options),
			changes.get("correct_answer", row.correct_answer),
		)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	if "scenario_id" in changes:
		_check_scenario(db, changes["scenario_id"], row.quiz_id)
		row.scenario_id = changes["scenario_id"]
	if changes.get("question_text"):
		row.question_text = changes["question_text"]
	if "explanation" in changes:
		row.explanation = changes["explanation"]
	row.question_type = question_type
	row.options = options
	row.correct_answer = correct
	db.commit()
	return question_to_dict(row)


@router.delete("/questions/{question_id}")
def delete_question(question_id: str, db: Session = Depends(get_db)):
	db.delete(_get_or_404(db, Question, question_id, "Question"))
	db.commit()
	return {"success": True}


# ----- IQ grades -----

@router.get("/iq-grades")
def list_iq_grades(db: Session = Depends(get_db)):
	rows = (
		db.query(IqGrade)
		.options(selectinload(IqGrade.subject))
		.order_by(IqGrade.min_score_percentage.asc())
		.all()
	)
	return [grade_to_dict(g) for g in rows]


@router.post("/iq-grades", status_code=201)
def create_iq_grade(req: IqGradeIn, db: Session = Depends(get_db)):
	try:
		validate_band(req.min_score_percentage, req.max_score_percentage, req.min_iq, req.max_iq, req.label)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	if req.subject_id is not None:
		_get_or_404(db, Subject, req.subject_id, "Subject")
	row = IqGrade(**req.model_dump())
	db.add(row)
	db.commit()
	return grade_to_dict(row)


@router.patch("/iq-grades/{grade_id}")
def update_iq_grade(grade_id: str, req: IqGradeIn, db: Session = Depends(get_db)):
	row = _get_or_404(db, IqGrade, grade_id, "IQ grade")
	changes = req.model_dump(exclude_unset=True)
	merged = {
		key: changes.get(key, getattr(row, key))
		for key in ("min_score_percentage", "max_score_percentage", "min_iq", "max_iq", "label")
	}
	try:
		validate_band(
			merged["min_score_percentage"],
			merged["max_score_percentage"],
			merged["min_iq"],
			merged["max_iq"],
			merged["label"],
		)
	except ValueError as e:
		raise HTTPException(status_code=400, detail=str(e))
	if changes.get("subject_id") is not None:
		_get_or_404(db, Subject, changes["subject_id"], "Subject")
	for key, value in changes.items():
		setattr(row, key, value)
	db.commit()
	return grade_to_dict(row)


@router.delete("/iq-grades/{grade_id}")
def delete_iq_grade(grade_id: str, db: Session = Depends(get_db)):
	db.delete(_get_or_404(db, IqGrade, grade_id, "IQ grade"))
	db.commit()
	return {"success": True}


# ----- payments, attempts, settings -----

@router.get("/payments")
def list_payments(db: Session = Depends(get_db)):
	return [payment_to_dict(p) for p in db.query(Payment).order_by(Payment.created_at.desc()).all()]


@router.get("/attempts")
def list_attempts(db: Session = Depends(get_db)):
	rows = db.query(QuizAttempt).order_by(QuizAttempt.completed_at.desc()).all()
	return [attempt_to_dict(a) for a in rows]


@router.patch("/payment-settings")
def update_payment_settings(req: PaymentSettingsIn, db: Session = Depends(get_db)):
	if req.membership_price <= 0:
		raise HTTPException(status_code=400, detail="membership_price must be positive")
	row = db.query(PaymentSettings).first()
	if row is None:
		row = PaymentSettings(membership_price=req.membership_price, split_code=req.split_code)
		db.add(row)
	else:
		row.membership_price = req.membership_price
		row.split_code = req.split_code
	db.commit()
	return settings_to_dict(row)
