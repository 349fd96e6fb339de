"""Pydantic types shared by the gateway, the navigator and the routers."""
from __future__ import annotations

import json
from datetime import datetime
from typing import Annotated, Any, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


Grade = Annotated[int, Field(ge=1, le=9)]
GRADES: List[int] = list(range(1, 10))

Role = Literal["student", "teacher", "admin"]
LessonType = Literal["explanation", "question", "assignment", "note"]
QuestionType = Literal["input", "mcq"]
BookType = Literal["ebook", "audiobook"]


def parse_choices(options: Optional[str]) -> List[str]:
	if not options:
		return []
	return [str(o) for o in json.loads(options)]


class Subject(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	name: str
	code: Optional[str] = None


class SubjectCreate(BaseModel):
	name: str = Field(min_length=1, max_length=128)
	code: Optional[str] = Field(default=None, max_length=32)


class Topic(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	subject_id: int
	grade: Grade
	title: str
	order_number: int
	created_by: Optional[int] = None


class TopicCreate(BaseModel):
	subject_id: int
	grade: Grade
	title: str = Field(min_length=1, max_length=256)
	# Appended after the last topic of the (grade, subject) when omitted
	order_number: Optional[int] = None


class LessonDraft(BaseModel):
	"""A lesson body without its topic, as written by a teacher or generated by the AI.

	Kind-specific fields are normalised: question fields are dropped for
	non-questions, choices only survive on multiple-choice questions and a due
	date only on assignments.
	"""

	type: LessonType
	content: str = Field(min_length=1)
	question_type: Optional[QuestionType] = None
	# JSON-serialised list of choices; a plain list is accepted and serialised
	options: Optional[str] = None
	correct_answer: Optional[str] = None
	explanation: Optional[str] = None
	due_date: Optional[str] = None

	@field_validator("options", mode="before")
	@classmethod
	def _serialise_options(cls, value: Any) -> Any:
		if value is None or value == "":
			return None
		if isinstance(value, (list, tuple)):
			return json.dumps([str(v) for v in value])
		if isinstance(value, str):
			try:
				parsed = json.loads(value)
			except ValueError:
				raise ValueError("options must be a JSON list of strings")
			if not isinstance(parsed, list):
				raise ValueError("options must be a JSON list of strings")
			return json.dumps([str(v) for v in parsed])
		raise ValueError("options must be a list of strings")

	@model_validator(mode="after")
	def _normalise_kind(self) -> "LessonDraft":
		if self.type == "question":
			if self.question_type is None:
				self.question_type = "input"
			if not (self.correct_answer or "").strip():
				raise ValueError("question lessons need a correct_answer")
			if self.question_type == "mcq":
				if len(parse_choices(self.options)) < 2:
					raise ValueError("multiple-choice questions need at least two options")
			else:
				self.options = None
		else:
			self.question_type = None
			self.options = None
			self.correct_answer = None
			self.explanation = None
		if self.type != "assignment":
			self.due_date = None
		return self

	def choices(self) -> List[str]:
		return parse_choices(self.options)


class LessonCreate(LessonDraft):
	topic_id: int


class Lesson(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	topic_id: int
	type: LessonType
	content: str
	question_type: Optional[QuestionType] = None
	options: Optional[str] = None
	correct_answer: Optional[str] = None
	explanation: Optional[str] = None
	due_date: Optional[str] = None
	created_by: Optional[int] = None

	def choices(self) -> List[str]:
		return parse_choices(self.options)


class Profile(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	username: str
	role: Role
	created_at: Optional[datetime] = None


class Book(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	title: str
	author: Optional[str] = None
	type: BookType
	url: str
	cover_url: Optional[str] = None
	created_by: Optional[int] = None
	created_at: Optional[datetime] = None


class BookCreate(BaseModel):
	title: str = Field(min_length=1, max_length=256)
	author: Optional[str] = None
	type: BookType
	url: str = Field(min_length=1)
	cover_url: Optional[str] = None


class Project(BaseModel):
	model_config = ConfigDict(from_attributes=True)

	id: int
	grade: Grade
	title: str
	description: str
	link: Optional[str] = None
	created_by: Optional[int] = None
	created_at: Optional[datetime] = None


class ProjectCreate(BaseModel):
	grade: Grade
	title: str = Field(min_length=1, max_length=256)
	description: str
	link: Optional[str] = None


class ThemeConfig(BaseModel):
	mode: Literal["light", "dark"] = "light"
	primary: str = "#4f46e5"
	secondary: str = "#6366f1"
	accent: str = "#10b981"


class ChatMessage(BaseModel):
	role: Literal["user", "model"]
	content: str


class TutorContext(BaseModel):
	grade: Grade
	topic: str
	lesson_content: Optional[str] = None


class GeneratedTopic(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	topic_title: str = Field(alias="topicTitle", min_length=1)
	lessons: List[LessonDraft]


class Feedback(BaseModel):
	correct: bool
	message: str
	explanation: Optional[str] = None


class Flashcard(BaseModel):
	front: str
	back: str
