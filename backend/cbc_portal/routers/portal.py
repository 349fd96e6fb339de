from __future__ import annotations

import logging
import re
import time
import uuid
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, sessionmaker

from .. import ai_service, data_service
from ..curriculum import OfflineCurriculum
from ..db import get_db, get_session_factory
from ..gemini_client import GeminiClient
from ..navigation import AccessDenied, AppContext, DatabaseLoader, Navigator, LESSON_VIEW
from ..preferences import THEME_PRESETS, PreferenceStore
from ..schemas import (
	ChatMessage, Feedback, Flashcard, Grade, Lesson, LessonCreate, Profile, Subject, ThemeConfig, Topic,
	TopicCreate, TutorContext,
)
from ..settings import settings
from .tutor import get_ai_client


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/portal", tags=["portal"])

_CLIENT_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class _PortalSession:
	def __init__(self, client_id: str, navigator: Navigator) -> None:
		self.session_id: str = uuid.uuid4().hex
		self.client_id = client_id
		self.navigator = navigator
		self.chat: List[ChatMessage] = []
		self.chat_topic_id: Optional[int] = None
		self.last_seen = time.monotonic()


_sessions: Dict[str, _PortalSession] = {}


class StartRequest(BaseModel):
	# Names the local preference namespace; reuse it to restore session and theme
	client_id: Optional[str] = None


class PortalState(BaseModel):
	session_id: str
	client_id: str
	view: str
	grade: Optional[int] = None
	subject: Optional[Subject] = None
	topic: Optional[Topic] = None
	subjects: List[Subject]
	topics: List[Topic]
	lessons: List[Lesson]
	answers: Dict[int, str]
	feedback: Dict[int, Feedback]
	is_loading: bool
	profile: Optional[Profile] = None
	theme: ThemeConfig


class GradeRequest(BaseModel):
	grade: Grade


class SelectRequest(BaseModel):
	id: int


class DestinationRequest(BaseModel):
	destination: str


class LoginRequest(BaseModel):
	username: str
	password: str


class AnswerRequest(BaseModel):
	answer: str


class PresetRequest(BaseModel):
	name: str


class TutorRequest(BaseModel):
	message: str = Field(min_length=1)


class TutorReply(BaseModel):
	text: str
	messages: List[ChatMessage]


def _state(session: _PortalSession) -> PortalState:
	nav = session.navigator
	return PortalState(
		session_id=session.session_id,
		client_id=session.client_id,
		view=nav.view,
		grade=nav.grade,
		subject=nav.subject,
		topic=nav.topic,
		subjects=nav.subjects,
		topics=nav.topics,
		lessons=nav.lessons,
		answers=nav.answers,
		feedback=nav.feedback,
		is_loading=nav.is_loading,
		profile=nav.context.profile,
		theme=nav.context.theme,
	)


def _get_session(session_id: str) -> _PortalSession:
	session = _sessions.get(session_id)
	if session is None:
		raise HTTPException(status_code=404, detail="Session not found")
	session.last_seen = time.monotonic()
	return session


def _evict_sessions() -> None:
	cutoff = time.monotonic() - settings.portal_session_idle_minutes * 60
	evicted = [sid for sid, s in _sessions.items() if s.last_seen < cutoff]
	# Room for one more session; least recently used go first
	overflow = len(_sessions) - len(evicted) - settings.portal_max_sessions + 1
	if overflow > 0:
		active = sorted((sid for sid in _sessions if sid not in evicted), key=lambda sid: _sessions[sid].last_seen)
		evicted += active[:overflow]
	for sid in evicted:
		_sessions.pop(sid, None)
	if evicted:
		logger.info("Evicted %d portal sessions", len(evicted))


def _build_loader(store: PreferenceStore, session_factory: sessionmaker):
	if settings.curriculum_source == "offline":
		return OfflineCurriculum(store)
	return DatabaseLoader(session_factory)


@router.post("/sessions", status_code=201, response_model=PortalState)
def start_session(req: StartRequest, session_factory: sessionmaker = Depends(get_session_factory)):
	client_id = req.client_id or uuid.uuid4().hex
	if not _CLIENT_ID.match(client_id):
		raise HTTPException(status_code=400, detail="client_id may only contain letters, digits, '-' and '_'")
	store = PreferenceStore(settings.preferences_dir / client_id)
	context = AppContext.load(store)
	_evict_sessions()
	session = _PortalSession(client_id, Navigator(_build_loader(store, session_factory), context))
	_sessions[session.session_id] = session
	return _state(session)


@router.get("/sessions/{session_id}", response_model=PortalState)
def get_state(session_id: str):
	return _state(_get_session(session_id))


@router.delete("/sessions/{session_id}", status_code=204)
def end_session(session_id: str):
	_get_session(session_id)
	_sessions.pop(session_id, None)


@router.post("/sessions/{session_id}/grade", response_model=PortalState)
async def select_grade(session_id: str, req: GradeRequest):
	session = _get_session(session_id)
	await session.navigator.select_grade(req.grade)
	return _state(session)


@router.post("/sessions/{session_id}/subject", response_model=PortalState)
async def select_subject(session_id: str, req: SelectRequest):
	session = _get_session(session_id)
	subject = next((s for s in session.navigator.subjects if s.id == req.id), None)
	if subject is None:
		raise HTTPException(status_code=404, detail=f"Subject {req.id} is not listed for this grade")
	await session.navigator.select_subject(subject)
	return _state(session)


@router.post("/sessions/{session_id}/topic", response_model=PortalState)
async def select_topic(session_id: str, req: SelectRequest):
	session = _get_session(session_id)
	topic = next((t for t in session.navigator.topics if t.id == req.id), None)
	if topic is None:
		raise HTTPException(status_code=404, detail=f"Topic {req.id} is not listed for this subject")
	await session.navigator.select_topic(topic)
	return _state(session)


@router.post("/sessions/{session_id}/back", response_model=PortalState)
def back(session_id: str):
	session = _get_session(session_id)
	session.navigator.back()
	return _state(session)


@router.post("/sessions/{session_id}/refresh", response_model=PortalState)
async def refresh(session_id: str):
	session = _get_session(session_id)
	await session.navigator.refresh()
	return _state(session)


@router.post("/sessions/{session_id}/destination", response_model=PortalState)
def go_to(session_id: str, req: DestinationRequest):
	session = _get_session(session_id)
	session.navigator.go_to(req.destination)
	return _state(session)


@router.post("/sessions/{session_id}/login", response_model=PortalState)
def login(session_id: str, req: LoginRequest, db: Session = Depends(get_db)):
	session = _get_session(session_id)
	row = data_service.login(db, req.username, req.password)
	session.navigator.sign_in(Profile.model_validate(row))
	return _state(session)


@router.post("/sessions/{session_id}/logout", response_model=PortalState)
def logout(session_id: str):
	session = _get_session(session_id)
	session.navigator.sign_out()
	return _state(session)


@router.put("/sessions/{session_id}/answers/{lesson_id}", response_model=PortalState)
def set_answer(session_id: str, lesson_id: int, req: AnswerRequest):
	session = _get_session(session_id)
	session.navigator.set_answer(lesson_id, req.answer)
	return _state(session)


@router.post("/sessions/{session_id}/answers/{lesson_id}/check", response_model=Feedback)
def check_answer(session_id: str, lesson_id: int):
	return _get_session(session_id).navigator.check_answer(lesson_id)


@router.get("/theme/presets")
def theme_presets():
	return THEME_PRESETS


@router.get("/sessions/{session_id}/theme", response_model=ThemeConfig)
def get_theme(session_id: str):
	return _get_session(session_id).navigator.context.theme


@router.put("/sessions/{session_id}/theme", response_model=ThemeConfig)
def set_theme(session_id: str, theme: ThemeConfig):
	return _get_session(session_id).navigator.context.update_theme(theme)


@router.post("/sessions/{session_id}/theme/preset", response_model=ThemeConfig)
def apply_preset(session_id: str, req: PresetRequest):
	return _get_session(session_id).navigator.context.apply_preset(req.name)


@router.get("/sessions/{session_id}/cards", response_model=List[Flashcard])
def flashcards(session_id: str):
	return _get_session(session_id).navigator.flashcards()


def _offline_author(session: _PortalSession) -> OfflineCurriculum:
	nav = session.navigator
	if not isinstance(nav.loader, OfflineCurriculum):
		raise HTTPException(status_code=409, detail="Custom content is only stored locally in offline mode; use /topics and /lessons")
	if nav.context.role not in ("teacher", "admin"):
		raise AccessDenied("Adding custom content requires the teacher or admin role")
	return nav.loader


@router.post("/sessions/{session_id}/custom/topics", status_code=201, response_model=Topic)
async def add_custom_topic(session_id: str, req: TopicCreate):
	session = _get_session(session_id)
	topic = _offline_author(session).save_topic(req)
	# Cached lists predate the new topic
	await session.navigator.refresh()
	return topic


@router.post("/sessions/{session_id}/custom/lessons", status_code=201, response_model=Lesson)
async def add_custom_lesson(session_id: str, req: LessonCreate):
	session = _get_session(session_id)
	lesson = _offline_author(session).save_lesson(req.topic_id, req)
	await session.navigator.refresh()
	return lesson


def _greeting(topic: Topic) -> ChatMessage:
	return ChatMessage(
		role="model",
		content=f'Hi there! I\'m your MathMaster AI tutor. Stuck on "{topic.title}"? I can help explain it or guide you through a problem.',
	)


@router.post("/sessions/{session_id}/tutor", response_model=TutorReply)
async def ask_tutor(
	session_id: str,
	req: TutorRequest,
	client: Optional[GeminiClient] = Depends(get_ai_client),
):
	session = _get_session(session_id)
	nav = session.navigator
	if nav.view != LESSON_VIEW or nav.topic is None or nav.grade is None:
		raise HTTPException(status_code=400, detail="Open a topic before asking the tutor")
	if session.chat_topic_id != nav.topic.id:
		session.chat = [_greeting(nav.topic)]
		session.chat_topic_id = nav.topic.id
	session.chat.append(ChatMessage(role="user", content=req.message))
	context = TutorContext(grade=nav.grade, topic=nav.topic.title, lesson_content=nav.lesson_text() or None)
	text = await ai_service.get_tutor_response(session.chat, context, client)
	session.chat.append(ChatMessage(role="model", content=text))
	return TutorReply(text=text, messages=session.chat)
