from __future__ import annotations
from sqlalchemy import create_engine, inspect
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./iq_quiz.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	except SQLAlchemyError:
		db.rollback()
		raise
	finally:
		db.close()


# Best-effort lightweight migrations for development (SQLite-friendly)
def ensure_schema() -> None:
	try:
		inspector = inspect(engine)
		tables = set(inspector.get_table_names())
	except Exception:
		return
	if "questions" in tables:
		cols = {c["name"] for c in inspector.get_columns("questions")}
		with engine.begin() as conn:
			if "scenario_id" not in cols:
				conn.exec_driver_sql("ALTER TABLE questions ADD COLUMN scenario_id VARCHAR(36)")
			if "explanation" not in cols:
				conn.exec_driver_sql("ALTER TABLE questions ADD COLUMN explanation TEXT")
	if "quiz_attempts" in tables:
		cols = {c["name"] for c in inspector.get_columns("quiz_attempts")}
		with engine.begin() as conn:
			if "iq_score" not in cols:
				conn.exec_driver_sql("ALTER TABLE quiz_attempts ADD COLUMN iq_score INTEGER")
			if "iq_label" not in cols:
				conn.exec_driver_sql("ALTER TABLE quiz_attempts ADD COLUMN iq_label VARCHAR(128)")
