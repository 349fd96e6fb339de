from __future__ import annotations
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from .settings import settings


DATABASE_URL = settings.database_url or "sqlite:///./cbc_portal.db"

_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, connect_args=_connect_args, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()


def get_db():
	db = SessionLocal()
	try:
		yield db
	finally:
		db.close()


def get_session_factory() -> sessionmaker:
	# Portal navigators outlive a request, so they get the factory rather than a session
	return SessionLocal


def init_db(bind=None) -> None:
	# Import models so every table is registered on Base.metadata
	from . import models  # noqa: F401
	Base.metadata.create_all(bind=bind or engine)
