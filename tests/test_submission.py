"""
Tests for the submission flow against a real (SQLite) session.
"""

import pytest

from iq_quiz.models import Payment, QuizAttempt, Subject
from iq_quiz.submission import (
    EmptyQuizError,
    PremiumAccessRequired,
    QuizNotFoundError,
    Submission,
    load_iq_grades,
    review_attempt,
    submit_quiz,
)

TEN_MCQ = [("multiple_choice", ["a", "b", "c"], "a")] * 10


def answers_for(quiz, correct):
    """Answer the first `correct` questions right and the rest wrong."""
    out = {}
    for i, q in enumerate(quiz.questions):
        out[q.id] = "a" if i < correct else "b"
    return out


class TestSubmitQuiz:
    def test_pass_boundary(self, db, user, make_quiz):
        quiz = make_quiz(TEN_MCQ, pass_mark=70)
        passed = submit_quiz(db, user.id, quiz.id, Submission(answers=answers_for(quiz, 7)))
        failed = submit_quiz(db, user.id, quiz.id, Submission(answers=answers_for(quiz, 6)))
        assert (passed.score, passed.total_questions, passed.passed) == (7, 10, True)
        assert (failed.score, failed.passed) == (6, False)

    def test_persists_bookkeeping_fields(self, db, user, make_quiz):
        quiz = make_quiz(TEN_MCQ)
        first = quiz.questions[0].id
        submission = Submission(answers={first: "a"}, marked_for_review=[first], time_spent_seconds=42)
        attempt = submit_quiz(db, user.id, quiz.id, submission)

        stored = db.get(QuizAttempt, attempt.id)
        assert stored.answers == {first: "a"}
        assert stored.marked_for_review == [first]
        assert stored.time_spent_seconds == 42
        assert stored.completed_at is not None
        assert db.query(QuizAttempt).count() == 1

    def test_iq_from_global_bands(self, db, user, make_quiz, add_grade):
        add_grade(60, 80, 100, 120, "Average")
        quiz = make_quiz(TEN_MCQ)
        attempt = submit_quiz(db, user.id, quiz.id, Submission(answers=answers_for(quiz, 7)))
        assert (attempt.iq_score, attempt.iq_label) == (110, "Average")

    def test_subject_bands_shadow_global(self, db, user, make_quiz, add_grade):
        quiz = make_quiz(TEN_MCQ)
        add_grade(0, 100, 70, 160, "Global")
        add_grade(0, 50, 80, 100, "Subject", subject_id=quiz.subject_id)
        attempt = submit_quiz(db, user.id, quiz.id, Submission(answers=answers_for(quiz, 3)))
        assert (attempt.iq_score, attempt.iq_label) == (92, "Subject")

        # 80% is outside every subject band; the global band must not be used
        attempt = submit_quiz(db, user.id, quiz.id, Submission(answers=answers_for(quiz, 8)))
        assert attempt.iq_score is None
        assert attempt.iq_label is None

    def test_no_bands_leaves_iq_empty(self, db, user, make_quiz):
        quiz = make_quiz(TEN_MCQ)
        attempt = submit_quiz(db, user.id, quiz.id, Submission(answers=answers_for(quiz, 10)))
        assert attempt.iq_score is None and attempt.iq_label is None

    def test_empty_quiz_is_rejected(self, db, user, make_quiz):
        quiz = make_quiz([])
        with pytest.raises(EmptyQuizError):
            submit_quiz(db, user.id, quiz.id, Submission())
        assert db.query(QuizAttempt).count() == 0

    def test_unknown_quiz(self, db, user):
        with pytest.raises(QuizNotFoundError):
            submit_quiz(db, user.id, "missing", Submission())

    def test_premium_subject_needs_payment(self, db, user, make_quiz):
        quiz = make_quiz(TEN_MCQ, premium=True)
        with pytest.raises(PremiumAccessRequired):
            submit_quiz(db, user.id, quiz.id, Submission())

        db.add(Payment(user_id=user.id, reference="PAY_1", amount=5000, status="success"))
        db.commit()
        attempt = submit_quiz(db, user.id, quiz.id, Submission())
        assert attempt.score == 0


class TestLoadIqGrades:
    def test_sets_are_loaded_separately_and_sorted(self, db, add_grade):
        subject = Subject(name="Science")
        db.add(subject)
        db.commit()
        add_grade(50, 100, 100, 140, "G-high")
        add_grade(0, 49, 70, 99, "G-low")
        add_grade(0, 100, 90, 110, "S", subject_id=subject.id)

        subject_bands, global_bands = load_iq_grades(db, subject.id)
        assert [b.label for b in subject_bands] == ["S"]
        assert [b.label for b in global_bands] == ["G-low", "G-high"]

    def test_without_subject(self, db, add_grade):
        add_grade(0, 100, 70, 160, "G")
        subject_bands, global_bands = load_iq_grades(db, None)
        assert subject_bands == []
        assert len(global_bands) == 1


class TestReviewAttempt:
    def test_review_uses_primary_gap_answer(self, db, user, make_quiz):
        quiz = make_quiz([
            ("fill_in_gap", ["Paris", "paris city"], "Paris"),
            ("true_false", ["True", "False"], "False"),
        ])
        gap, tf = quiz.questions
        attempt = submit_quiz(
            db, user.id, quiz.id,
            Submission(answers={gap.id: " PARIS CITY "}, marked_for_review=[tf.id]),
        )
        review = review_attempt(attempt, quiz)

        assert [r["question_id"] for r in review] == [gap.id, tf.id]
        assert review[0]["is_correct"] is True
        assert review[0]["correct_answer"] == "Paris"
        assert review[1]["is_correct"] is False
        assert review[1]["your_answer"] is None
        assert review[1]["marked_for_review"] is True
