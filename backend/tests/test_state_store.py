from datetime import datetime, timedelta

from playlearn.cleanup import purge_expired
from playlearn.models import PlacementSession
from playlearn.settings import settings
from playlearn.state_store import ConversationStateStore


def test_put_get_delete(db):
    store = ConversationStateStore(db)
    store.put("pending:amy", {"type": "post_clear_menu", "level": 4})
    db.commit()
    assert store.get("pending:amy") == {"type": "post_clear_menu", "level": 4}
    store.delete("pending:amy")
    db.commit()
    assert store.get("pending:amy") is None
    assert store.get("pending:amy", "fallback") == "fallback"


def test_expired_entries_read_as_absent(db):
    store = ConversationStateStore(db, ttl=timedelta(minutes=5))
    store.put("fresh", 1)
    store.put("stale", 2, ttl=timedelta(seconds=-1))
    store.put("forever", 3, expires=False)
    db.commit()
    assert store.get("fresh") == 1
    assert store.get("stale") is None
    assert store.get("forever") == 3

    later = datetime.utcnow() + timedelta(days=1)
    assert store.purge_expired(later) == 2
    db.commit()
    assert store.get("forever") == 3


def test_overwrite_refreshes_value(db):
    store = ConversationStateStore(db)
    store.put("k", "a", ttl=timedelta(seconds=-1))
    store.put("k", "b")
    db.commit()
    assert store.get("k") == "b"


def test_cleanup_purges_idle_placements(db, monkeypatch):
    monkeypatch.setattr(settings, "assessment_idle_expiry_minutes", 10)
    old = datetime.utcnow() - timedelta(hours=2)
    db.add_all([
        PlacementSession(placement_id="idle", user_id="u", mode="toeic", start_level=3, current_level=3,
                         updated_at=old, is_done=False),
        PlacementSession(placement_id="done", user_id="u", mode="toeic", start_level=3, current_level=5,
                         updated_at=old, is_done=True),
    ])
    ConversationStateStore(db).put("stale", 1, ttl=timedelta(seconds=-1))
    db.commit()

    assert purge_expired(db) == 2
    assert db.get(PlacementSession, "idle") is None
    assert db.get(PlacementSession, "done") is not None
