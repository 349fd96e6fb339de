import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cbc_portal import data_service
from cbc_portal.db import get_db, get_session_factory, init_db
from cbc_portal.main import app
from cbc_portal.routers import portal
from cbc_portal.settings import settings

PASSWORD = "secret123"


@pytest.fixture
def engine():
	"""In-memory SQLite shared by every session of one test."""
	engine = create_engine(
		"sqlite://",
		connect_args={"check_same_thread": False},
		poolclass=StaticPool,
	)
	init_db(bind=engine)
	yield engine
	engine.dispose()


@pytest.fixture
def session_factory(engine):
	return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
	session = session_factory()
	yield session
	session.close()


@pytest.fixture
def admin(db):
	return data_service.ensure_profile(db, "admin", PASSWORD, "admin")


@pytest.fixture
def teacher(db, admin):
	return data_service.register(db, "mrs_wanjiru", PASSWORD, "teacher", actor=admin)


@pytest.fixture
def other_teacher(db, admin):
	return data_service.register(db, "mr_otieno", PASSWORD, "teacher", actor=admin)


@pytest.fixture
def student(db):
	return data_service.register(db, "amani", PASSWORD, "student")


@pytest.fixture
def math(db, admin):
	return data_service.add_subject(db, "Mathematics", "MATH", actor=admin)


@pytest.fixture
def client(session_factory, tmp_path, monkeypatch):
	def override_get_db():
		session = session_factory()
		try:
			yield session
		finally:
			session.close()

	app.dependency_overrides[get_db] = override_get_db
	app.dependency_overrides[get_session_factory] = lambda: session_factory
	monkeypatch.setattr(settings, "preferences_dir", tmp_path / "prefs")
	monkeypatch.setattr(settings, "curriculum_source", "database")
	yield TestClient(app)
	app.dependency_overrides.clear()
	portal._sessions.clear()


@pytest.fixture
def auth_headers(client):
	def _headers(username, password=PASSWORD):
		r = client.post("/auth/token", data={"username": username, "password": password})
		assert r.status_code == 200, r.text
		return {"Authorization": f"Bearer {r.json()['access_token']}"}
	return _headers


class FakeAIClient:
	"""Stands in for GeminiClient; records calls and replays canned output."""

	def __init__(self, reply="", error=None):
		self.reply = reply
		self.error = error
		self.calls = []
		self.closed = False

	async def generate_chat(self, messages, *, system_instruction, temperature=None):
		self.calls.append(("chat", list(messages), system_instruction))
		if self.error is not None:
			raise self.error
		return self.reply

	async def generate_json(self, prompt, *, schema):
		self.calls.append(("json", prompt, schema))
		if self.error is not None:
			raise self.error
		return self.reply

	async def aclose(self):
		self.closed = True


@pytest.fixture
def fake_ai():
	return FakeAIClient
