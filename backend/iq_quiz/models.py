from __future__ import annotations
import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, Boolean, JSON, ForeignKey
from sqlalchemy.orm import relationship
from .db import Base


def _uuid() -> str:
	return str(uuid.uuid4())


class User(Base):
	__tablename__ = "users"
	id = Column(String(36), primary_key=True, default=_uuid)
	phone_number = Column(String(32), unique=True, index=True, nullable=False)
	name = Column(String(256), nullable=True)
	is_verified = Column(Boolean, default=False, nullable=False)
	last_otp_verified_at = Column(DateTime, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	attempts = relationship("QuizAttempt", back_populates="user", cascade="all, delete-orphan")
	payments = relationship("Payment", back_populates="user", cascade="all, delete-orphan")


class Admin(Base):
	__tablename__ = "admins"
	id = Column(String(36), primary_key=True, default=_uuid)
	username = Column(String(128), unique=True, index=True, nullable=False)
	password_hash = Column(String(256), nullable=False)
	is_super_admin = Column(Boolean, default=False, nullable=False)
	created_by_id = Column(String(36), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class OtpSession(Base):
	__tablename__ = "otp_sessions"
	id = Column(String(36), primary_key=True, default=_uuid)
	phone_number = Column(String(32), index=True, nullable=False)
	otp = Column(String(8), nullable=False)
	expires_at = Column(DateTime, nullable=False)
	verified = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class AuthSession(Base):
	__tablename__ = "auth_sessions"
	# Primary key is the JWT jti; deleting the row revokes the token
	session_id = Column(String(64), primary_key=True)
	principal_id = Column(String(36), index=True, nullable=False)
	kind = Column(String(16), nullable=False)  # 'user' | 'admin'
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	last_activity_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Subject(Base):
	__tablename__ = "subjects"
	id = Column(String(36), primary_key=True, default=_uuid)
	name = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	is_premium = Column(Boolean, default=False, nullable=False)
	theme_color = Column(String(64), default="217 91% 60%", nullable=False)  # HSL
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	quizzes = relationship("Quiz", back_populates="subject", cascade="all, delete-orphan")
	iq_grades = relationship("IqGrade", back_populates="subject", cascade="all, delete-orphan")


class Quiz(Base):
	__tablename__ = "quizzes"
	id = Column(String(36), primary_key=True, default=_uuid)
	subject_id = Column(String(36), ForeignKey("subjects.id", ondelete="CASCADE"), index=True, nullable=False)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=True)
	pass_mark_percentage = Column(Integer, default=50, nullable=False)
	time_limit_minutes = Column(Integer, nullable=True)
	instant_feedback = Column(Boolean, default=False, nullable=False)
	randomize_questions = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	subject = relationship("Subject", back_populates="quizzes")
	scenarios = relationship(
		"Scenario", back_populates="quiz", cascade="all, delete-orphan", order_by="Scenario.order_index"
	)
	questions = relationship(
		"Question", back_populates="quiz", cascade="all, delete-orphan", order_by="Question.order_index"
	)
	attempts = relationship("QuizAttempt", back_populates="quiz", cascade="all, delete-orphan")


class Scenario(Base):
	__tablename__ = "scenarios"
	id = Column(String(36), primary_key=True, default=_uuid)
	quiz_id = Column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), index=True, nullable=False)
	title = Column(String(256), nullable=True)
	passage = Column(Text, nullable=False)
	order_index = Column(Integer, default=0, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	quiz = relationship("Quiz", back_populates="scenarios")
	questions = relationship("Question", back_populates="scenario", order_by="Question.order_index")


class Question(Base):
	__tablename__ = "questions"
	id = Column(String(36), primary_key=True, default=_uuid)
	quiz_id = Column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), index=True, nullable=False)
	scenario_id = Column(String(36), ForeignKey("scenarios.id", ondelete="SET NULL"), nullable=True)
	question_text = Column(Text, nullable=False)
	question_type = Column(String(32), nullable=False)  # 'multiple_choice' | 'true_false' | 'fill_in_gap'
	# Choices for MCQ, ['True', 'False'] for T/F, acceptable answer variations for fill-in-gap
	options = Column(JSON, nullable=False, default=list)
	correct_answer = Column(Text, nullable=False)
	explanation = Column(Text, nullable=True)
	order_index = Column(Integer, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	quiz = relationship("Quiz", back_populates="questions")
	scenario = relationship("Scenario", back_populates="questions")


class QuizAttempt(Base):
	__tablename__ = "quiz_attempts"
	# Insert-only: one row per submission, never updated
	id = Column(String(36), primary_key=True, default=_uuid)
	user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	quiz_id = Column(String(36), ForeignKey("quizzes.id", ondelete="CASCADE"), index=True, nullable=False)
	answers = Column(JSON, nullable=False, default=dict)  # {question_id: answer}
	marked_for_review = Column(JSON, nullable=False, default=list)
	score = Column(Integer, nullable=True)
	total_questions = Column(Integer, nullable=False)
	passed = Column(Boolean, nullable=True)
	iq_score = Column(Integer, nullable=True)
	iq_label = Column(String(128), nullable=True)
	time_spent_seconds = Column(Integer, nullable=True)
	started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	completed_at = Column(DateTime, nullable=True)

	user = relationship("User", back_populates="attempts")
	quiz = relationship("Quiz", back_populates="attempts")


class Payment(Base):
	__tablename__ = "payments"
	id = Column(String(36), primary_key=True, default=_uuid)
	user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), index=True, nullable=False)
	reference = Column(String(128), unique=True, index=True, nullable=False)
	amount = Column(Integer, nullable=False)
	status = Column(String(16), nullable=False)  # 'pending' | 'success' | 'failed'
	gateway_response = Column(JSON, nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	user = relationship("User", back_populates="payments")


class PaymentSettings(Base):
	__tablename__ = "payment_settings"
	id = Column(String(36), primary_key=True, default=_uuid)
	membership_price = Column(Integer, default=5000, nullable=False)  # kobo
	split_code = Column(String(128), nullable=True)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class IqGrade(Base):
	__tablename__ = "iq_grades"
	id = Column(String(36), primary_key=True, default=_uuid)
	# Null subject means the band is global
	subject_id = Column(String(36), ForeignKey("subjects.id", ondelete="CASCADE"), index=True, nullable=True)
	min_score_percentage = Column(Integer, nullable=False)
	max_score_percentage = Column(Integer, nullable=False)
	min_iq = Column(Integer, nullable=False)
	max_iq = Column(Integer, nullable=False)
	label = Column(String(128), nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	subject = relationship("Subject", back_populates="iq_grades")
