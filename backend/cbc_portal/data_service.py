"""Persistence gateway: one function per entity and verb over the table store.

Every failure surfaces as a ``DataServiceError`` carrying a readable message.
Write operations take the acting profile and enforce role and creator rules
here, so no caller can skip them.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .models import Book, Lesson, Profile, Project, Subject, Topic
from .schemas import BookCreate, GeneratedTopic, LessonCreate, LessonDraft, ProjectCreate, TopicCreate
from .security import hash_password, verify_password


logger = logging.getLogger(__name__)

ROLES = ("student", "teacher", "admin")
AUTHORS = ("teacher", "admin")


class DataServiceError(Exception):
	status_code = 400

	def __init__(self, message: str) -> None:
		super().__init__(message)
		self.message = message


class NotFoundError(DataServiceError):
	status_code = 404


class PermissionDenied(DataServiceError):
	status_code = 403


class InvalidCredentials(DataServiceError):
	status_code = 401

	def __init__(self, message: str = "Invalid username or password") -> None:
		super().__init__(message)


class UsernameTaken(DataServiceError):
	status_code = 409

	def __init__(self, message: str = "Username already exists") -> None:
		super().__init__(message)


def _commit(db: Session) -> None:
	try:
		db.commit()
	except IntegrityError as err:
		db.rollback()
		raise DataServiceError(str(err.orig)) from err
	except SQLAlchemyError as err:
		db.rollback()
		raise DataServiceError(str(err)) from err


def _require_role(actor: Optional[Profile], roles: Iterable[str]) -> Profile:
	allowed = tuple(roles)
	if actor is None or actor.role not in allowed:
		raise PermissionDenied(f"This action requires one of the roles: {', '.join(allowed)}")
	return actor


def _require_owner(actor: Optional[Profile], created_by: Optional[int]) -> Profile:
	actor = _require_role(actor, AUTHORS)
	if actor.role != "admin" and created_by != actor.id:
		raise PermissionDenied("Teachers can only change content they created")
	return actor


def _get_or_404(db: Session, model, row_id: int, label: str):
	row = db.get(model, row_id)
	if row is None:
		raise NotFoundError(f"{label} {row_id} not found")
	return row


# Subjects

def list_subjects(db: Session) -> List[Subject]:
	return db.query(Subject).order_by(Subject.name, Subject.id).all()


def subjects_for_grade(db: Session, grade: int) -> List[Subject]:
	"""Subjects that have at least one topic in ``grade``."""
	subject_ids = select(Topic.subject_id).where(Topic.grade == grade)
	return (
		db.query(Subject)
		.filter(Subject.id.in_(subject_ids))
		.order_by(Subject.name, Subject.id)
		.all()
	)


def add_subject(db: Session, name: str, code: Optional[str] = None, *, actor: Optional[Profile]) -> Subject:
	_require_role(actor, ("admin",))
	name = (name or "").strip()
	if not name:
		raise DataServiceError("Subject name is required")
	row = Subject(name=name, code=(code or "").strip() or None)
	db.add(row)
	_commit(db)
	db.refresh(row)
	logger.info("Subject %s added by %s", row.id, actor.username)
	return row


def delete_subject(db: Session, subject_id: int, *, actor: Optional[Profile]) -> None:
	_require_role(actor, ("admin",))
	row = _get_or_404(db, Subject, subject_id, "Subject")
	topic_ids = select(Topic.id).where(Topic.subject_id == subject_id)
	db.query(Lesson).filter(Lesson.topic_id.in_(topic_ids)).delete(synchronize_session=False)
	db.query(Topic).filter(Topic.subject_id == subject_id).delete(synchronize_session=False)
	db.delete(row)
	_commit(db)
	logger.info("Subject %s deleted by %s", subject_id, actor.username)


# Topics

def _ordered_topics(query):
	return query.order_by(Topic.order_number.asc(), Topic.id.asc()).all()


def topics_by_grade(db: Session, grade: int, created_by: Optional[int] = None) -> List[Topic]:
	query = db.query(Topic).filter(Topic.grade == grade)
	if created_by is not None:
		query = query.filter(Topic.created_by == created_by)
	return _ordered_topics(query)


def topics_for(db: Session, grade: int, subject_id: int, created_by: Optional[int] = None) -> List[Topic]:
	query = db.query(Topic).filter(Topic.grade == grade, Topic.subject_id == subject_id)
	if created_by is not None:
		query = query.filter(Topic.created_by == created_by)
	return _ordered_topics(query)


def topics_by_creator(db: Session, created_by: int) -> List[Topic]:
	return (
		db.query(Topic)
		.filter(Topic.created_by == created_by)
		.order_by(Topic.grade.asc(), Topic.order_number.asc(), Topic.id.asc())
		.all()
	)


def _next_order_number(db: Session, grade: int, subject_id: int) -> int:
	current = (
		db.query(func.max(Topic.order_number))
		.filter(Topic.grade == grade, Topic.subject_id == subject_id)
		.scalar()
	)
	return (current or 0) + 1


def _new_topic(db: Session, data: TopicCreate, actor: Profile) -> Topic:
	_get_or_404(db, Subject, data.subject_id, "Subject")
	order_number = data.order_number
	if order_number is None:
		order_number = _next_order_number(db, data.grade, data.subject_id)
	row = Topic(
		subject_id=data.subject_id,
		grade=data.grade,
		title=data.title.strip(),
		order_number=order_number,
		created_by=actor.id,
	)
	db.add(row)
	return row


def add_topic(db: Session, data: TopicCreate, *, actor: Optional[Profile]) -> Topic:
	actor = _require_role(actor, AUTHORS)
	row = _new_topic(db, data, actor)
	_commit(db)
	db.refresh(row)
	logger.info("Topic %s (grade %s) added by %s", row.id, row.grade, actor.username)
	return row


def delete_topic(db: Session, topic_id: int, *, actor: Optional[Profile]) -> None:
	row = _get_or_404(db, Topic, topic_id, "Topic")
	actor = _require_owner(actor, row.created_by)
	db.query(Lesson).filter(Lesson.topic_id == topic_id).delete(synchronize_session=False)
	db.delete(row)
	_commit(db)
	logger.info("Topic %s deleted by %s", topic_id, actor.username)


# Lessons

def lessons_by_topic(db: Session, topic_id: int, created_by: Optional[int] = None) -> List[Lesson]:
	query = db.query(Lesson).filter(Lesson.topic_id == topic_id)
	if created_by is not None:
		query = query.filter(Lesson.created_by == created_by)
	return query.order_by(Lesson.id.asc()).all()


def _new_lesson(db: Session, topic_id: int, draft: LessonDraft, actor: Profile) -> Lesson:
	row = Lesson(
		topic_id=topic_id,
		type=draft.type,
		content=draft.content,
		question_type=draft.question_type,
		options=draft.options,
		correct_answer=draft.correct_answer,
		explanation=draft.explanation,
		due_date=draft.due_date,
		created_by=actor.id,
	)
	db.add(row)
	return row


def add_lesson(db: Session, data: LessonCreate, *, actor: Optional[Profile]) -> Lesson:
	actor = _require_role(actor, AUTHORS)
	_get_or_404(db, Topic, data.topic_id, "Topic")
	row = _new_lesson(db, data.topic_id, data, actor)
	_commit(db)
	db.refresh(row)
	logger.info("Lesson %s (%s) added to topic %s by %s", row.id, row.type, row.topic_id, actor.username)
	return row


def get_lesson(db: Session, lesson_id: int) -> Lesson:
	return _get_or_404(db, Lesson, lesson_id, "Lesson")


def delete_lesson(db: Session, lesson_id: int, *, actor: Optional[Profile]) -> None:
	row = _get_or_404(db, Lesson, lesson_id, "Lesson")
	actor = _require_owner(actor, row.created_by)
	db.delete(row)
	_commit(db)
	logger.info("Lesson %s deleted by %s", lesson_id, actor.username)


def publish_generated_topic(
	db: Session,
	subject_id: int,
	grade: int,
	generated: GeneratedTopic,
	*,
	actor: Optional[Profile],
) -> Tuple[Topic, List[Lesson]]:
	"""Write a generated topic and all of its lessons in one transaction."""
	actor = _require_role(actor, AUTHORS)
	if not generated.lessons:
		raise DataServiceError("Generated topic has no lessons")
	topic = _new_topic(db, TopicCreate(subject_id=subject_id, grade=grade, title=generated.topic_title), actor)
	db.flush()
	lessons = [_new_lesson(db, topic.id, draft, actor) for draft in generated.lessons]
	_commit(db)
	db.refresh(topic)
	for row in lessons:
		db.refresh(row)
	logger.info("Published generated topic %s with %d lessons by %s", topic.id, len(lessons), actor.username)
	return topic, lessons


# Books

def list_books(db: Session, kind: Optional[str] = None, created_by: Optional[int] = None) -> List[Book]:
	query = db.query(Book)
	if kind is not None:
		query = query.filter(Book.type == kind)
	if created_by is not None:
		query = query.filter(Book.created_by == created_by)
	return query.order_by(Book.title.asc(), Book.id.asc()).all()


def add_book(db: Session, data: BookCreate, *, actor: Optional[Profile]) -> Book:
	actor = _require_role(actor, AUTHORS)
	row = Book(
		title=data.title.strip(),
		author=data.author,
		type=data.type,
		url=data.url,
		cover_url=data.cover_url,
		created_by=actor.id,
	)
	db.add(row)
	_commit(db)
	db.refresh(row)
	return row


def delete_book(db: Session, book_id: int, *, actor: Optional[Profile]) -> None:
	row = _get_or_404(db, Book, book_id, "Book")
	_require_owner(actor, row.created_by)
	db.delete(row)
	_commit(db)


# Projects

def list_projects(db: Session, grade: Optional[int] = None, created_by: Optional[int] = None) -> List[Project]:
	query = db.query(Project)
	if grade is not None:
		query = query.filter(Project.grade == grade)
	if created_by is not None:
		query = query.filter(Project.created_by == created_by)
	return query.order_by(Project.grade.asc(), Project.id.asc()).all()


def add_project(db: Session, data: ProjectCreate, *, actor: Optional[Profile]) -> Project:
	actor = _require_role(actor, AUTHORS)
	row = Project(
		grade=data.grade,
		title=data.title.strip(),
		description=data.description,
		link=data.link,
		created_by=actor.id,
	)
	db.add(row)
	_commit(db)
	db.refresh(row)
	return row


def delete_project(db: Session, project_id: int, *, actor: Optional[Profile]) -> None:
	row = _get_or_404(db, Project, project_id, "Project")
	_require_owner(actor, row.created_by)
	db.delete(row)
	_commit(db)


# Profiles

def get_profile(db: Session, username: str) -> Optional[Profile]:
	return db.query(Profile).filter(Profile.username == username).first()


def login(db: Session, username: str, password: str) -> Profile:
	row = get_profile(db, (username or "").strip())
	# Same error for unknown user and wrong password
	if row is None or not verify_password(password or "", row.password_hash):
		raise InvalidCredentials()
	return row


def _create_profile(db: Session, username: str, password: str, role: str) -> Profile:
	username = (username or "").strip()
	password = password or ""
	if not username or not password:
		raise DataServiceError("username and password are required")
	if len(username) < 3 or len(username) > 128:
		raise DataServiceError("username must be 3-128 characters")
	if role not in ROLES:
		raise DataServiceError(f"role must be one of {', '.join(ROLES)}")
	if get_profile(db, username) is not None:
		raise UsernameTaken()
	row = Profile(username=username, password_hash=hash_password(password), role=role)
	db.add(row)
	try:
		db.commit()
	except IntegrityError as err:
		# Lost a race against a concurrent registration
		db.rollback()
		raise UsernameTaken() from err
	except SQLAlchemyError as err:
		db.rollback()
		raise DataServiceError(str(err)) from err
	db.refresh(row)
	logger.info("Registered %s profile %s", role, username)
	return row


def register(
	db: Session,
	username: str,
	password: str,
	role: str = "student",
	*,
	actor: Optional[Profile] = None,
) -> Profile:
	"""Create a profile. Anyone may register a student; other roles are granted by an admin."""
	if role != "student" and role in ROLES:
		_require_role(actor, ("admin",))
	return _create_profile(db, username, password, role)


def ensure_profile(db: Session, username: str, password: str, role: str) -> Profile:
	row = get_profile(db, username)
	if row is not None:
		return row
	# Startup seeding, no acting profile exists yet
	return _create_profile(db, username, password, role)
