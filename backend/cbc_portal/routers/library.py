from __future__ import annotations
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .. import data_service
from ..db import get_db
from ..models import Profile as ProfileRow
from ..schemas import Book, BookCreate, Project, ProjectCreate
from .auth import get_current_user


router = APIRouter(tags=["library"])


@router.get("/books", response_model=List[Book])
def list_books(
	type: Optional[Literal["ebook", "audiobook"]] = None,
	created_by: Optional[int] = None,
	db: Session = Depends(get_db),
):
	return data_service.list_books(db, type, created_by)


@router.post("/books", status_code=201, response_model=Book)
def add_book(req: BookCreate, user: ProfileRow = Depends(get_current_user), db: Session = Depends(get_db)):
	return data_service.add_book(db, req, actor=user)


@router.delete("/books/{book_id}", status_code=204)
def delete_book(book_id: int, user: ProfileRow = Depends(get_current_user), db: Session = Depends(get_db)):
	data_service.delete_book(db, book_id, actor=user)


@router.get("/projects", response_model=List[Project])
def list_projects(
	grade: Optional[int] = Query(default=None, ge=1, le=9),
	created_by: Optional[int] = None,
	db: Session = Depends(get_db),
):
	return data_service.list_projects(db, grade, created_by)


@router.post("/projects", status_code=201, response_model=Project)
def add_project(req: ProjectCreate, user: ProfileRow = Depends(get_current_user), db: Session = Depends(get_db)):
	return data_service.add_project(db, req, actor=user)


@router.delete("/projects/{project_id}", status_code=204)
def delete_project(project_id: int, user: ProfileRow = Depends(get_current_user), db: Session = Depends(get_db)):
	data_service.delete_project(db, project_id, actor=user)
