# tests/conftest.py
import os

# API-Tests sollen RabbitMQ nie kontaktieren
os.environ["DISABLE_QUEUE"] = "true"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

import simple_social_feed.db as db
import simple_social_feed.files as files
from simple_social_feed.events import get_broadcaster
from simple_social_feed.main import app


class RecordingBroadcaster:
    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    async def emit(self, event: str, payload: dict) -> None:
        self.events.append((event, payload))


@pytest.fixture(autouse=True)
def engine(monkeypatch):
    """Frische In-Memory-DB pro Test."""
    eng = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    monkeypatch.setattr(db, "ENGINE", eng)
    db.init_db()
    yield eng
    eng.dispose()


@pytest.fixture(autouse=True)
def media_root(tmp_path, monkeypatch):
    monkeypatch.setattr(files, "MEDIA_ROOT", tmp_path)
    (tmp_path / files.IMAGES_SUBDIR).mkdir()
    return tmp_path


@pytest.fixture()
def broadcaster():
    recorder = RecordingBroadcaster()
    app.dependency_overrides[get_broadcaster] = lambda: recorder
    yield recorder
    app.dependency_overrides.pop(get_broadcaster, None)


@pytest.fixture()
def client(broadcaster):
    with TestClient(app) as c:
        yield c
