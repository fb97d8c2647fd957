from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import ConversationState
from .settings import settings


class ConversationStateStore:
	"""Key/value store for chat-flow state, persisted alongside everything else.

	Entries survive restarts; an entry past its ``expires_at`` reads as absent
	and is removed by :meth:`purge_expired`.
	"""

	def __init__(self, db: Session, ttl: Optional[timedelta] = None) -> None:
		self.db = db
		if ttl is None and settings.conversation_state_ttl_minutes > 0:
			ttl = timedelta(minutes=settings.conversation_state_ttl_minutes)
		self.ttl = ttl

	def get(self, key: str, default: Any = None) -> Any:
		row = self.db.get(ConversationState, key)
		if row is None:
			return default
		if row.expires_at is not None and row.expires_at <= datetime.utcnow():
			return default
		return row.value

	def put(self, key: str, value: Any, ttl: Optional[timedelta] = None, *, expires: bool = True) -> None:
		ttl = ttl if ttl is not None else self.ttl
		expires_at = datetime.utcnow() + ttl if (expires and ttl) else None
		row = self.db.get(ConversationState, key)
		if row is None:
			row = ConversationState(key=key)
			self.db.add(row)
		row.value = value
		row.expires_at = expires_at
		self.db.flush()

	def delete(self, key: str) -> None:
		row = self.db.get(ConversationState, key)
		if row is not None:
			self.db.delete(row)
			self.db.flush()

	def purge_expired(self, now: Optional[datetime] = None) -> int:
		now = now or datetime.utcnow()
		res = self.db.execute(
			delete(ConversationState).where(
				ConversationState.expires_at.is_not(None), ConversationState.expires_at <= now
			)
		)
		return res.rowcount or 0
