from datetime import timedelta

from fastapi.testclient import TestClient

from playlearn import db as db_module
from playlearn import main
from playlearn.models import ConversationState
from playlearn.settings import settings
from playlearn.state_store import ConversationStateStore


def test_startup_cleans_up_and_keeps_watcher(engine, session_factory, monkeypatch):
    seed = session_factory()
    ConversationStateStore(seed).put("stale", 1, ttl=timedelta(seconds=-1))
    ConversationStateStore(seed).put("kept", 2, expires=False)
    seed.commit()
    seed.close()

    monkeypatch.setattr(main, "engine", engine)
    monkeypatch.setattr(main, "SessionLocal", session_factory)
    monkeypatch.setattr(main, "ensure_schema", lambda: db_module.ensure_schema(engine))
    monkeypatch.setattr(settings, "cleanup_interval_seconds", 3600)

    with TestClient(main.app) as client:
        assert client.get("/health").json() == {"ok": True}
        task = main.app.state.cleanup_task
        assert task is not None
        assert not task.done()

    check = session_factory()
    try:
        assert check.get(ConversationState, "stale") is None
        assert ConversationStateStore(check).get("kept") == 2
    finally:
        check.close()


def test_no_watcher_when_interval_is_zero(engine, session_factory, monkeypatch):
    monkeypatch.setattr(main, "engine", engine)
    monkeypatch.setattr(main, "SessionLocal", session_factory)
    monkeypatch.setattr(main, "ensure_schema", lambda: db_module.ensure_schema(engine))
    monkeypatch.setattr(settings, "cleanup_interval_seconds", 0)

    with TestClient(main.app):
        assert main.app.state.cleanup_task is None
