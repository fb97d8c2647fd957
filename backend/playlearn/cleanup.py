from __future__ import annotations
import logging
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import PlacementSession
from .settings import settings
from .state_store import ConversationStateStore

logger = logging.getLogger(__name__)


def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
	now = now or datetime.utcnow()
	removed = ConversationStateStore(db).purge_expired(now)

	# Unfinished placements idle past the configured expiry; finished ones are kept
	minutes = settings.assessment_idle_expiry_minutes
	if minutes > 0:
		threshold = now - timedelta(minutes=minutes)
		res = db.execute(
			delete(PlacementSession).where(
				PlacementSession.is_done.is_(False), PlacementSession.updated_at < threshold
			)
		)
		removed += res.rowcount or 0

	db.commit()
	if removed:
		logger.info("Cleanup removed %s expired rows", removed)
	return removed
