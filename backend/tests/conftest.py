"""Shared fixtures: in-memory database, a small question bank, API client."""
import random

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from playlearn import models  # noqa: F401
from playlearn.db import Base, create_db_engine, get_db
from playlearn.main import app
from playlearn.models import Question, UserProgress
from playlearn.service import LearningService

CHOICES = ["cat", "dog", "bird"]
# Every answer key below points at "dog", each in a different encoding
KEYS = ["2", "B", "dog"]


@pytest.fixture(autouse=True)
def _seed_random():
    random.seed(1234)


@pytest.fixture
def engine():
    eng = create_db_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, future=True)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


def add_question(db, q_id, mode, level, answer="2", choices=None, explanation=None, is_active=True):
    q = Question(
        q_id=q_id,
        mode=mode,
        level=level,
        prompt=f"Prompt for {q_id}",
        choices=list(CHOICES if choices is None else choices),
        answer=answer,
        explanation=explanation or f"Because of {q_id}",
        is_active=is_active,
    )
    db.add(q)
    return q


@pytest.fixture
def bank(db):
    for level in range(1, 11):
        for i, key in enumerate(KEYS):
            add_question(db, f"toeic-{level}-{i}", "toeic", level, answer=key)
    add_question(db, "toeic-3-off", "toeic", 3, is_active=False)
    add_question(db, "grammar-3-0", "grammar", 3, answer="A")
    add_question(db, "grammar-3-1", "grammar", 3, answer="went", choices=[])
    db.commit()
    return db


@pytest.fixture
def service(bank):
    return LearningService(bank)


def set_level(db, user_id, level, **fields):
    user = db.get(UserProgress, user_id)
    if user is None:
        user = UserProgress(user_id=user_id, current_level=level, last_mode="toeic", placement_done=False,
                            exp_points=0, correct_streak=0)
        db.add(user)
    user.current_level = level
    for name, value in fields.items():
        setattr(user, name, value)
    db.commit()
    return user


@pytest.fixture
def client(bank, session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
