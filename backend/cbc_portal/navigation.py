"""View-state orchestration for one portal client.

``AppContext`` owns the signed-in profile and the theme, loaded from a
``PreferenceStore`` at startup and written back on every change.
``Navigator`` owns the grade -> subject -> topic -> lesson stack, the lists
fetched for it, and the answers and feedback for the open topic.

Each fetched list lives in a slot keyed by the navigation values it depends
on. Re-selecting the same key reuses the loaded list; a new key invalidates
the slot and bumps its generation, and a response that arrives for an older
generation is dropped instead of overwriting newer state.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Generic, List, Optional, Protocol, Tuple, TypeVar

from sqlalchemy.orm import sessionmaker

from . import data_service
from .preferences import DEFAULT_THEME, PreferenceStore, find_preset
from .schemas import Feedback, Flashcard, Lesson, Profile, Subject, ThemeConfig, Topic


logger = logging.getLogger(__name__)

T = TypeVar("T")

GRADES_VIEW = "grades"
SUBJECTS_VIEW = "subjects"
TOPICS_VIEW = "topics"
LESSON_VIEW = "lesson"

# Destination -> roles allowed; None means any signed-in profile
DESTINATIONS: Dict[str, Optional[Tuple[str, ...]]] = {
	"admin": ("admin",),
	"teacher": ("teacher",),
	"theme": None,
	"ebooks": None,
	"audiobooks": None,
	"projects": None,
	"cards": None,
}

_PARENT_VIEW = {
	LESSON_VIEW: TOPICS_VIEW,
	TOPICS_VIEW: SUBJECTS_VIEW,
	SUBJECTS_VIEW: GRADES_VIEW,
}

CORRECT_MESSAGE = "Correct!"
INCORRECT_MESSAGE = "Incorrect. Try again!"
CARD_BACK_FALLBACK = "Check your lesson content for details."


class NavigationError(Exception):
	status_code = 400


class AccessDenied(NavigationError):
	status_code = 403


class CurriculumLoader(Protocol):
	async def subjects_for_grade(self, grade: int) -> List[Subject]: ...

	async def topics_for(self, grade: int, subject_id: int) -> List[Topic]: ...

	async def lessons_for(self, topic_id: int) -> List[Lesson]: ...


class DatabaseLoader:
	"""Reads through the persistence gateway, one short-lived session per call."""

	def __init__(self, session_factory: sessionmaker) -> None:
		self.session_factory = session_factory

	def _run(self, fn: Callable[..., List[Any]], schema, *args) -> List[Any]:
		db = self.session_factory()
		try:
			return [schema.model_validate(row) for row in fn(db, *args)]
		finally:
			db.close()

	async def subjects_for_grade(self, grade: int) -> List[Subject]:
		return await asyncio.to_thread(self._run, data_service.subjects_for_grade, Subject, grade)

	async def topics_for(self, grade: int, subject_id: int) -> List[Topic]:
		return await asyncio.to_thread(self._run, data_service.topics_for, Topic, grade, subject_id)

	async def lessons_for(self, topic_id: int) -> List[Lesson]:
		return await asyncio.to_thread(self._run, data_service.lessons_by_topic, Lesson, topic_id)


class FetchSlot(Generic[T]):
	def __init__(self, name: str) -> None:
		self.name = name
		self.key: Optional[Tuple[Any, ...]] = None
		self.generation = 0
		self.loaded = False
		self.loading = False
		self.items: List[T] = []

	async def load(self, key: Tuple[Any, ...], fetch: Callable[[], Awaitable[List[T]]]) -> List[T]:
		if key == self.key and (self.loaded or self.loading):
			return self.items
		self.generation += 1
		generation = self.generation
		self.key = key
		self.items = []
		self.loaded = False
		self.loading = True
		try:
			items = await fetch()
		except Exception:
			logger.exception("Fetching %s for %s failed", self.name, key)
			if generation == self.generation:
				self.loading = False
			return self.items
		if generation != self.generation:
			logger.debug("Discarding stale %s response for %s", self.name, key)
			return self.items
		self.items = list(items)
		self.loaded = True
		self.loading = False
		return self.items

	def reset(self) -> None:
		self.generation += 1
		self.key = None
		self.items = []
		self.loaded = False
		self.loading = False


def is_correct(answer: Optional[str], lesson: Lesson) -> bool:
	if lesson.correct_answer is None:
		return False
	return (answer or "").strip().lower() == lesson.correct_answer.lower()


def grade_answer(answer: Optional[str], lesson: Lesson) -> Feedback:
	correct = is_correct(answer, lesson)
	return Feedback(
		correct=correct,
		message=CORRECT_MESSAGE if correct else INCORRECT_MESSAGE,
		explanation=lesson.explanation,
	)


def build_flashcards(lessons: List[Lesson]) -> List[Flashcard]:
	return [
		Flashcard(front=l.content, back=l.correct_answer or CARD_BACK_FALLBACK)
		for l in lessons
		if l.type == "question"
	]


class AppContext:
	def __init__(self, store: PreferenceStore) -> None:
		self.store = store
		self.profile: Optional[Profile] = None
		self.theme: ThemeConfig = DEFAULT_THEME.model_copy()

	@classmethod
	def load(cls, store: PreferenceStore) -> "AppContext":
		context = cls(store)
		context.profile = store.get_session()
		context.theme = store.get_theme()
		return context

	@property
	def role(self) -> Optional[str]:
		return self.profile.role if self.profile else None

	def sign_in(self, profile: Profile) -> None:
		self.profile = profile
		self.store.set_session(profile)

	def sign_out(self) -> None:
		self.profile = None
		self.store.set_session(None)

	def update_theme(self, theme: ThemeConfig) -> ThemeConfig:
		self.theme = theme
		self.store.set_theme(theme)
		return theme

	def apply_preset(self, name: str) -> ThemeConfig:
		preset = find_preset(name)
		if preset is None:
			raise NavigationError(f"Unknown theme preset: {name}")
		colours = {k: v for k, v in preset.items() if k != "name"}
		return self.update_theme(self.theme.model_copy(update=colours))


class Navigator:
	def __init__(self, loader: CurriculumLoader, context: AppContext) -> None:
		self.loader = loader
		self.context = context
		self.view = GRADES_VIEW
		self.grade: Optional[int] = None
		self.subject: Optional[Subject] = None
		self.topic: Optional[Topic] = None
		self.subjects_slot: FetchSlot[Subject] = FetchSlot("subjects")
		self.topics_slot: FetchSlot[Topic] = FetchSlot("topics")
		self.lessons_slot: FetchSlot[Lesson] = FetchSlot("lessons")
		self.answers: Dict[int, str] = {}
		self.feedback: Dict[int, Feedback] = {}

	@property
	def subjects(self) -> List[Subject]:
		return self.subjects_slot.items

	@property
	def topics(self) -> List[Topic]:
		return self.topics_slot.items

	@property
	def lessons(self) -> List[Lesson]:
		return self.lessons_slot.items

	@property
	def is_loading(self) -> bool:
		return self.subjects_slot.loading or self.topics_slot.loading or self.lessons_slot.loading

	async def select_grade(self, grade: int) -> List[Subject]:
		if grade not in range(1, 10):
			raise NavigationError(f"Grade must be between 1 and 9, got {grade}")
		if grade != self.grade:
			self.subject = None
			self.topic = None
		self.grade = grade
		self.view = SUBJECTS_VIEW
		logger.debug("Grade %s selected", grade)
		return await self.subjects_slot.load((grade,), lambda: self.loader.subjects_for_grade(grade))

	async def select_subject(self, subject: Subject) -> List[Topic]:
		if self.grade is None:
			raise NavigationError("Select a grade before a subject")
		grade = self.grade
		if self.subject is None or subject.id != self.subject.id:
			self.topic = None
		self.subject = subject
		self.view = TOPICS_VIEW
		return await self.topics_slot.load((grade, subject.id), lambda: self.loader.topics_for(grade, subject.id))

	async def select_topic(self, topic: Topic) -> List[Lesson]:
		self.topic = topic
		self.answers = {}
		self.feedback = {}
		self.view = LESSON_VIEW
		return await self.lessons_slot.load((topic.id,), lambda: self.loader.lessons_for(topic.id))

	def back(self) -> str:
		self.view = _PARENT_VIEW.get(self.view, GRADES_VIEW)
		return self.view

	def go_to(self, destination: str) -> str:
		if destination == GRADES_VIEW:
			self.view = GRADES_VIEW
			return self.view
		if destination not in DESTINATIONS:
			raise NavigationError(f"Unknown destination: {destination}")
		if self.context.profile is None:
			raise AccessDenied("Sign in to open this page")
		roles = DESTINATIONS[destination]
		if roles is not None and self.context.role not in roles:
			raise AccessDenied(f"The {destination} page requires the {' or '.join(roles)} role")
		self.view = destination
		return self.view

	def sign_in(self, profile: Profile) -> None:
		self.context.sign_in(profile)

	def sign_out(self) -> None:
		self.context.sign_out()
		self.view = GRADES_VIEW

	def _lesson(self, lesson_id: int) -> Lesson:
		for lesson in self.lessons:
			if lesson.id == lesson_id:
				return lesson
		raise NavigationError(f"Lesson {lesson_id} is not part of the open topic")

	def set_answer(self, lesson_id: int, answer: str) -> None:
		self._lesson(lesson_id)
		self.answers[lesson_id] = answer

	def check_answer(self, lesson_id: int) -> Feedback:
		lesson = self._lesson(lesson_id)
		if lesson.type != "question":
			raise NavigationError(f"Lesson {lesson_id} is not a question")
		result = grade_answer(self.answers.get(lesson_id), lesson)
		self.feedback[lesson_id] = result
		return result

	def flashcards(self) -> List[Flashcard]:
		return build_flashcards(self.lessons)

	def lesson_text(self) -> str:
		return "\n".join(l.content for l in self.lessons)

	async def refresh(self) -> None:
		"""Drop every cached list and refetch the ones the current view shows."""
		for slot in (self.subjects_slot, self.topics_slot, self.lessons_slot):
			slot.reset()
		if self.view == SUBJECTS_VIEW and self.grade is not None:
			await self.select_grade(self.grade)
		elif self.view == TOPICS_VIEW and self.subject is not None:
			await self.select_subject(self.subject)
		elif self.view == LESSON_VIEW and self.topic is not None:
			answers, feedback = self.answers, self.feedback
			await self.select_topic(self.topic)
			self.answers, self.feedback = answers, feedback
