from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from .. import data_service
from ..db import get_db
from ..models import Profile as ProfileRow
from ..navigation import grade_answer
from ..schemas import Feedback, Lesson, LessonCreate, Subject, SubjectCreate, Topic, TopicCreate
from .auth import get_current_user, require_roles


router = APIRouter(tags=["curriculum"])

authors = require_roles("teacher", "admin")


class CheckRequest(BaseModel):
	answer: str


@router.get("/subjects", response_model=List[Subject])
def list_subjects(grade: Optional[int] = Query(default=None, ge=1, le=9), db: Session = Depends(get_db)):
	if grade is None:
		return data_service.list_subjects(db)
	return data_service.subjects_for_grade(db, grade)


@router.post("/subjects", status_code=201, response_model=Subject)
def add_subject(req: SubjectCreate, user: ProfileRow = Depends(get_current_user), db: Session = Depends(get_db)):
	return data_service.add_subject(db, req.name, req.code, actor=user)


@router.delete("/subjects/{subject_id}", status_code=204)
def delete_subject(subject_id: int, user: ProfileRow = Depends(get_current_user), db: Session = Depends(get_db)):
	data_service.delete_subject(db, subject_id, actor=user)


@router.get("/topics", response_model=List[Topic])
def list_topics(
	grade: int = Query(ge=1, le=9),
	subject_id: Optional[int] = None,
	created_by: Optional[int] = None,
	db: Session = Depends(get_db),
):
	if subject_id is None:
		return data_service.topics_by_grade(db, grade, created_by)
	return data_service.topics_for(db, grade, subject_id, created_by)


@router.get("/topics/mine", response_model=List[Topic])
def my_topics(user: ProfileRow = Depends(authors), db: Session = Depends(get_db)):
	return data_service.topics_by_creator(db, user.id)


@router.post("/topics", status_code=201, response_model=Topic)
def add_topic(req: TopicCreate, user: ProfileRow = Depends(get_current_user), db: Session = Depends(get_db)):
	return data_service.add_topic(db, req, actor=user)


@router.delete("/topics/{topic_id}", status_code=204)
def delete_topic(topic_id: int, user: ProfileRow = Depends(get_current_user), db: Session = Depends(get_db)):
	data_service.delete_topic(db, topic_id, actor=user)


@router.get("/topics/{topic_id}/lessons", response_model=List[Lesson])
def list_lessons(topic_id: int, created_by: Optional[int] = None, db: Session = Depends(get_db)):
	return data_service.lessons_by_topic(db, topic_id, created_by)


@router.post("/lessons", status_code=201, response_model=Lesson)
def add_lesson(req: LessonCreate, user: ProfileRow = Depends(get_current_user), db: Session = Depends(get_db)):
	return data_service.add_lesson(db, req, actor=user)


@router.delete("/lessons/{lesson_id}", status_code=204)
def delete_lesson(lesson_id: int, user: ProfileRow = Depends(get_current_user), db: Session = Depends(get_db)):
	data_service.delete_lesson(db, lesson_id, actor=user)


@router.post("/lessons/{lesson_id}/check", response_model=Feedback)
def check_lesson(lesson_id: int, req: CheckRequest, db: Session = Depends(get_db)):
	lesson = Lesson.model_validate(data_service.get_lesson(db, lesson_id))
	if lesson.type != "question":
		raise data_service.NotFoundError(f"Question {lesson_id} not found")
	return grade_answer(req.answer, lesson)
