from __future__ import annotations
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, selectinload

from .auth import get_current_user
from ..db import get_db
from ..iq import choose_bands
from ..models import Quiz, QuizAttempt, Subject, User
from ..submission import (
    EmptyQuizError,
    PremiumAccessRequired,
    QuizNotFoundError,
    Submission,
    ensure_quiz_access,
    load_iq_grades,
    load_quiz_with_questions,
    review_attempt,
    submit_quiz,
)


router = APIRouter(prefix="/api", tags=["quizzes"])


class SubmitRequest(BaseModel):
    answers: Dict[str, str] = Field(default_factory=dict)
    marked_for_review: List[str] = Field(default_factory=list)
    time_spent_seconds: int = Field(default=0, ge=0)


class SubmitResponse(BaseModel):
    attempt_id: str
    score: int
    total_questions: int
    passed: bool
    iq_score: Optional[int] = None
    iq_label: Optional[str] = None


def subject_to_dict(subject: Subject) -> Dict[str, Any]:
    return {
        "id": subject.id,
        "name": subject.name,
        "description": subject.description,
        "is_premium": subject.is_premium,
        "theme_color": subject.theme_color,
        "created_at": subject.created_at,
    }


def quiz_to_dict(quiz: Quiz) -> Dict[str, Any]:
    return {
        "id": quiz.id,
        "subject_id": quiz.subject_id,
        "title": quiz.title,
        "description": quiz.description,
        "pass_mark_percentage": quiz.pass_mark_percentage,
        "time_limit_minutes": quiz.time_limit_minutes,
        "instant_feedback": quiz.instant_feedback,
        "randomize_questions": quiz.randomize_questions,
        "created_at": quiz.created_at,
    }


def _public_question(q) -> Dict[str, Any]:
    data = {
        "id": q.id,
        "scenario_id": q.scenario_id,
        "question_text": q.question_text,
        "question_type": q.question_type,
        "order_index": q.order_index,
    }
    # Fill-in-gap variations are the answers themselves
    if q.question_type != "fill_in_gap":
        data["options"] = list(q.options or [])
    # Explanations and answers only matter for instant feedback
    if q.quiz is not None and q.quiz.instant_feedback:
        data["correct_answer"] = q.correct_answer
        data["explanation"] = q.explanation
    return data


def attempt_to_dict(attempt: QuizAttempt) -> Dict[str, Any]:
    return {
        "id": attempt.id,
        "user_id": attempt.user_id,
        "quiz_id": attempt.quiz_id,
        "answers": attempt.answers,
        "marked_for_review": attempt.marked_for_review,
        "score": attempt.score,
        "total_questions": attempt.total_questions,
        "passed": attempt.passed,
        "iq_score": attempt.iq_score,
        "iq_label": attempt.iq_label,
        "time_spent_seconds": attempt.time_spent_seconds,
        "started_at": attempt.started_at,
        "completed_at": attempt.completed_at,
    }


def band_to_dict(grade) -> Dict[str, Any]:
    return {
        "subject_id": grade.subject_id,
        "min_score_percentage": grade.min_score_percentage,
        "max_score_percentage": grade.max_score_percentage,
        "min_iq": grade.min_iq,
        "max_iq": grade.max_iq,
        "label": grade.label,
    }


@router.get("/subjects")
def list_subjects(db: Session = Depends(get_db)):
    subjects = db.query(Subject).options(selectinload(Subject.quizzes)).order_by(Subject.created_at.asc()).all()
    out = []
    for s in subjects:
        item = subject_to_dict(s)
        item["quizzes"] = [quiz_to_dict(q) for q in s.quizzes]
        out.append(item)
    return out


@router.get("/quizzes/{quiz_id}")
def get_quiz(quiz_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        quiz = load_quiz_with_questions(db, quiz_id)
        ensure_quiz_access(db, user.id, quiz)
    except QuizNotFoundError:
        raise HTTPException(status_code=404, detail="Quiz not found")
    except PremiumAccessRequired as e:
        raise HTTPException(status_code=403, detail=str(e))
    data = quiz_to_dict(quiz)
    data["subject"] = subject_to_dict(quiz.subject) if quiz.subject else None
    data["scenarios"] = [
        {
            "id": sc.id,
            "title": sc.title,
            "passage": sc.passage,
            "order_index": sc.order_index,
            "questions": [_public_question(q) for q in quiz.questions if q.scenario_id == sc.id],
        }
        for sc in quiz.scenarios
    ]
    data["questions"] = [_public_question(q) for q in quiz.questions if q.scenario_id is None]
    data["total_questions"] = len(quiz.questions)
    return data


@router.post("/quizzes/{quiz_id}/submit", response_model=SubmitResponse)
def submit(quiz_id: str, req: SubmitRequest, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    submission = Submission(
        answers=req.answers,
        marked_for_review=req.marked_for_review,
        time_spent_seconds=req.time_spent_seconds,
    )
    try:
        attempt = submit_quiz(db, user.id, quiz_id, submission)
    except QuizNotFoundError:
        raise HTTPException(status_code=404, detail="Quiz not found")
    except EmptyQuizError:
        raise HTTPException(status_code=400, detail="Quiz has no questions")
    except PremiumAccessRequired as e:
        raise HTTPException(status_code=403, detail=str(e))
    return SubmitResponse(
        attempt_id=attempt.id,
        score=attempt.score,
        total_questions=attempt.total_questions,
        passed=attempt.passed,
        iq_score=attempt.iq_score,
        iq_label=attempt.iq_label,
    )


@router.get("/quiz-attempts")
def list_attempts(user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    rows = (
        db.query(QuizAttempt)
        .options(selectinload(QuizAttempt.quiz).selectinload(Quiz.subject))
        .filter(QuizAttempt.user_id == user.id)
        .order_by(QuizAttempt.completed_at.desc())
        .all()
    )
    out = []
    for a in rows:
        item = attempt_to_dict(a)
        item["quiz"] = quiz_to_dict(a.quiz)
        item["quiz"]["subject"] = subject_to_dict(a.quiz.subject) if a.quiz.subject else None
        out.append(item)
    return out


@router.get("/quiz-attempts/{attempt_id}")
def get_attempt(attempt_id: str, user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    attempt = db.get(QuizAttempt, attempt_id)
    if attempt is None or attempt.user_id != user.id:
        raise HTTPException(status_code=404, detail="Attempt not found")
    quiz = load_quiz_with_questions(db, attempt.quiz_id)
    data = attempt_to_dict(attempt)
    data["quiz"] = quiz_to_dict(quiz)
    data["quiz"]["subject"] = subject_to_dict(quiz.subject) if quiz.subject else None
    data["review"] = review_attempt(attempt, quiz)
    return data


@router.get("/iq-grades")
@router.get("/iq-grades/{subject_id}")
def applicable_iq_grades(subject_id: Optional[str] = None, db: Session = Depends(get_db)):
    subject_bands, global_bands = load_iq_grades(db, subject_id)
    return [band_to_dict(b) for b in choose_bands(subject_bands, global_bands)]
