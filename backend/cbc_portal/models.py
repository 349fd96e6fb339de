from __future__ import annotations
from datetime import datetime
from sqlalchemy import Column, String, DateTime, Integer, Text, ForeignKey
from .db import Base


class Profile(Base):
	__tablename__ = "profiles"
	id = Column(Integer, primary_key=True, autoincrement=True)
	username = Column(String(128), unique=True, index=True, nullable=False)
	password_hash = Column(String(256), nullable=False)
	# student | teacher | admin
	role = Column(String(16), default="student", nullable=False)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Subject(Base):
	__tablename__ = "subjects"
	id = Column(Integer, primary_key=True, autoincrement=True)
	# Unique by convention only
	name = Column(String(128), nullable=False, index=True)
	code = Column(String(32), nullable=True)


class Topic(Base):
	__tablename__ = "topics"
	id = Column(Integer, primary_key=True, autoincrement=True)
	subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True)
	grade = Column(Integer, nullable=False, index=True)
	title = Column(String(256), nullable=False)
	order_number = Column(Integer, default=1, nullable=False)
	created_by = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)


class Lesson(Base):
	__tablename__ = "lessons"
	id = Column(Integer, primary_key=True, autoincrement=True)
	topic_id = Column(Integer, ForeignKey("topics.id", ondelete="CASCADE"), nullable=False, index=True)
	# explanation | question | assignment | note
	type = Column(String(16), nullable=False)
	content = Column(Text, nullable=False)
	# input | mcq, questions only
	question_type = Column(String(8), nullable=True)
	options = Column(Text, nullable=True)  # JSON list of choices, mcq only
	correct_answer = Column(Text, nullable=True)
	explanation = Column(Text, nullable=True)
	due_date = Column(String(32), nullable=True)
	created_by = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)


class Book(Base):
	__tablename__ = "books"
	id = Column(Integer, primary_key=True, autoincrement=True)
	title = Column(String(256), nullable=False)
	author = Column(String(256), nullable=True)
	# ebook | audiobook
	type = Column(String(16), nullable=False, index=True)
	url = Column(Text, nullable=False)
	cover_url = Column(Text, nullable=True)
	created_by = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Project(Base):
	__tablename__ = "projects"
	id = Column(Integer, primary_key=True, autoincrement=True)
	grade = Column(Integer, nullable=False, index=True)
	title = Column(String(256), nullable=False)
	description = Column(Text, nullable=False)
	link = Column(Text, nullable=True)
	created_by = Column(Integer, ForeignKey("profiles.id", ondelete="SET NULL"), nullable=True, index=True)
	created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
