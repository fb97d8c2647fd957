from __future__ import annotations
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import attempts
from .models import ItemType, Question, ReviewItem
from .settings import settings


def local_day_start(now: Optional[datetime] = None, offset_hours: Optional[int] = None) -> datetime:
    """UTC instant of local midnight for the configured offset."""
    now = now or datetime.utcnow()
    offset = timedelta(hours=settings.summary_utc_offset_hours if offset_hours is None else offset_hours)
    local = now + offset
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    return midnight - offset


def save_item(db: Session, user_id: str, item_type: str, key: str, payload: Optional[Dict[str, Any]] = None) -> ReviewItem:
    now = datetime.utcnow()
    row = ReviewItem(
        user_id=user_id,
        item_type=item_type,
        key=key,
        payload=payload or {},
        strength=1,
        last_seen_at=now,
        created_at=now,
    )
    db.add(row)
    db.flush()
    return row


def review_items(db: Session, user_id: str, limit: int = 5, item_type: Optional[str] = None) -> List[ReviewItem]:
    stmt = select(ReviewItem).where(ReviewItem.user_id == user_id)
    if item_type:
        stmt = stmt.where(ReviewItem.item_type == item_type)
    stmt = stmt.order_by(ReviewItem.last_seen_at.asc(), ReviewItem.created_at.asc()).limit(limit)
    return list(db.execute(stmt).scalars())


def item_payload(item: ReviewItem) -> Dict[str, Any]:
    return {
        "item_id": item.item_id,
        "item_type": item.item_type,
        "key": item.key,
        "payload": item.payload or {},
        "strength": item.strength,
        "last_seen_at": item.last_seen_at.isoformat() if item.last_seen_at else None,
        "created_at": item.created_at.isoformat() if item.created_at else None,
    }


def learning_summary(db: Session, user_id: str, days: int = 7, now: Optional[datetime] = None) -> Dict[str, Any]:
    since = (now or datetime.utcnow()) - timedelta(days=days)
    logs = attempts.attempts_since(db, user_id, since)
    saved = list(
        db.execute(
            select(ReviewItem.item_type).where(ReviewItem.user_id == user_id, ReviewItem.created_at >= since)
        ).scalars()
    )
    return {
        "days": days,
        "attempts": len(logs),
        "wrong": sum(1 for lg in logs if lg.is_correct is False),
        "saved_items": len(saved),
        "saved_vocab": sum(1 for t in saved if t == ItemType.VOCAB.value),
    }


def today_notes(db: Session, user_id: str, *, only_wrong: bool = False, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    logs = attempts.attempts_since(db, user_id, local_day_start(now), only_wrong=only_wrong)
    if not logs:
        return []
    q_ids = {lg.q_id for lg in logs}
    by_id = {q.q_id: q for q in db.execute(select(Question).where(Question.q_id.in_(q_ids))).scalars()}
    notes: List[Dict[str, Any]] = []
    for lg in logs:
        q = by_id.get(lg.q_id)
        if q is None:
            continue
        notes.append({
            "q_id": q.q_id,
            "topic": q.mode,
            "level": q.level,
            "prompt": q.prompt,
            "choices": list(q.choices or []),
            "answer": q.answer,
            "explanation": q.explanation,
            "user_answer": lg.user_answer,
            "is_correct": bool(lg.is_correct),
            "attempted_at": lg.created_at.isoformat() if lg.created_at else None,
        })
    return notes
