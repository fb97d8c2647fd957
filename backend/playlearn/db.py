from __future__ import annotations
import logging
from sqlalchemy import create_engine, event, inspect
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings

logger = logging.getLogger(__name__)

DATABASE_URL = settings.database_url or "sqlite:///./playlearn.db"


def create_db_engine(url: str, **kwargs):
	is_sqlite = url.startswith("sqlite")
	connect_args = {"check_same_thread": False} if is_sqlite else {}
	eng = create_engine(url, connect_args=connect_args, future=True, **kwargs)
	if is_sqlite:
		# pysqlite defers BEGIN, which breaks SAVEPOINT; emit it ourselves
		@event.listens_for(eng, "connect")
		def _disable_pysqlite_begin(dbapi_connection, connection_record):
			dbapi_connection.isolation_level = None

		@event.listens_for(eng, "begin")
		def _emit_begin(conn):
			conn.exec_driver_sql("BEGIN")
	return eng


engine = create_db_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


# Best-effort lightweight migrations for development (SQLite-friendly)
def ensure_schema(bind=None) -> None:
	bind = bind or engine
	try:
		inspector = inspect(bind)
		tables = set(inspector.get_table_names())
	except Exception:
		logger.warning("Schema inspection failed; skipping migrations", exc_info=True)
		return
	if "users" in tables:
		cols = {c["name"] for c in inspector.get_columns("users")}
		with bind.begin() as conn:
			if "correct_streak" not in cols:
				conn.exec_driver_sql("ALTER TABLE users ADD COLUMN correct_streak INTEGER DEFAULT 0 NOT NULL")
			if "pending_promotion_level" not in cols:
				conn.exec_driver_sql("ALTER TABLE users ADD COLUMN pending_promotion_level INTEGER")
			if "pending_promotion_reason" not in cols:
				conn.exec_driver_sql("ALTER TABLE users ADD COLUMN pending_promotion_reason VARCHAR(32)")
	if "placement_sessions" in tables:
		cols = {c["name"] for c in inspector.get_columns("placement_sessions")}
		if "asked_q_ids" not in cols:
			with bind.begin() as conn:
				conn.exec_driver_sql("ALTER TABLE placement_sessions ADD COLUMN asked_q_ids JSON")
