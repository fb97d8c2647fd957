from __future__ import annotations
import uuid
from datetime import datetime
from enum import Enum
from sqlalchemy import Boolean, Column, DateTime, Index, Integer, JSON, String, Text
from .db import Base


MIN_LEVEL = 1
MAX_LEVEL = 10


class Topic(str, Enum):
	TOEIC = "toeic"
	GRAMMAR = "grammar"
	TRAVEL = "travel"
	BUSINESS = "business"
	VOCAB = "vocab"


class Signal(str, Enum):
	HARD = "hard"
	EASY = "easy"
	NEUTRAL = "neutral"


class ItemType(str, Enum):
	VOCAB = "vocab"
	MISTAKE = "mistake"
	NOTE = "note"


# study_logs.event_type values
QUIZ_ATTEMPT = "quiz_attempt"
PLACEMENT_ATTEMPT = "placement_attempt"


def new_id() -> str:
	return str(uuid.uuid4())


class Question(Base):
	__tablename__ = "questions"
	# Curated externally; read-only to the service
	q_id = Column(String(36), primary_key=True, default=new_id)
	mode = Column(String(32), nullable=False, index=True)
	level = Column(Integer, nullable=False, index=True)
	prompt = Column(Text, nullable=False)
	choices = Column(JSON, nullable=False, default=list)
	# Expected answer: "2", "B" or literal text
	answer = Column(String(512), nullable=False)
	explanation = Column(Text, nullable=True)
	media = Column(JSON, nullable=True)
	is_active = Column(Boolean, default=True, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

	__table_args__ = (Index("ix_questions_pool", "mode", "level", "is_active"),)


class UserProgress(Base):
	__tablename__ = "users"
	user_id = Column(String(128), primary_key=True, index=True)
	# One level per user; switching topics keeps it
	current_level = Column(Integer, default=3, nullable=False)
	last_mode = Column(String(32), nullable=True)
	placement_done = Column(Boolean, default=False, nullable=False)
	exp_points = Column(Integer, default=0, nullable=False)
	correct_streak = Column(Integer, default=0, nullable=False)
	pending_promotion_level = Column(Integer, nullable=True)
	pending_promotion_reason = Column(String(32), nullable=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class StudyLog(Base):
	__tablename__ = "study_logs"
	# Append-only: rows are inserted once and never updated
	id = Column(Integer, primary_key=True, autoincrement=True)
	user_id = Column(String(128), nullable=False, index=True)
	q_id = Column(String(36), nullable=False, index=True)
	event_type = Column(String(32), nullable=False, default=QUIZ_ATTEMPT)
	ref_id = Column(String(64), nullable=True)
	mode = Column(String(32), nullable=False)
	level = Column(Integer, nullable=False)
	is_correct = Column(Boolean, nullable=False)
	user_answer = Column(Text, nullable=True)
	raw_answer = Column(Text, nullable=True)
	signal = Column(String(16), nullable=False, default=Signal.NEUTRAL.value)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

	__table_args__ = (Index("ix_study_logs_user_mode_created", "user_id", "mode", "created_at"),)


class PlacementSession(Base):
	__tablename__ = "placement_sessions"
	placement_id = Column(String(36), primary_key=True, default=new_id)
	user_id = Column(String(128), nullable=False, index=True)
	mode = Column(String(32), nullable=False)
	asked_count = Column(Integer, default=0, nullable=False)
	correct_count = Column(Integer, default=0, nullable=False)
	start_level = Column(Integer, nullable=False)
	current_level = Column(Integer, nullable=False)
	last_q_id = Column(String(36), nullable=True)
	asked_q_ids = Column(JSON, nullable=True)
	is_done = Column(Boolean, default=False, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	finished_at = Column(DateTime, nullable=True)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class ReviewItem(Base):
	__tablename__ = "review_items"
	item_id = Column(String(36), primary_key=True, default=new_id)
	user_id = Column(String(128), nullable=False, index=True)
	item_type = Column(String(16), nullable=False)
	key = Column(String(512), nullable=False)
	payload = Column(JSON, nullable=False, default=dict)
	strength = Column(Integer, default=1, nullable=False)
	last_seen_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class ConversationState(Base):
	__tablename__ = "conversation_state"
	# Keyed blobs such as "pending:<user>" with an optional expiry
	key = Column(String(256), primary_key=True)
	value = Column(JSON, nullable=True)
	expires_at = Column(DateTime, nullable=True, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
	updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
