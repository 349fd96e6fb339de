from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from .. import ai_service, data_service
from ..db import get_db
from ..gemini_client import GeminiClient
from ..models import Profile as ProfileRow
from ..schemas import ChatMessage, GeneratedTopic, Grade, Lesson, Topic, TutorContext
from .auth import get_current_user, require_roles


router = APIRouter(prefix="/tutor", tags=["tutor"])


def get_ai_client() -> Optional[GeminiClient]:
	# None lets ai_service build (and close) a client from settings per call
	return None


class ChatRequest(BaseModel):
	messages: List[ChatMessage] = Field(min_length=1)
	context: TutorContext


class ChatResponse(BaseModel):
	text: str


class GenerateRequest(BaseModel):
	prompt: str = Field(min_length=1)
	grade: Grade


class PublishRequest(BaseModel):
	subject_id: int
	grade: Grade
	topic: GeneratedTopic


class PublishResponse(BaseModel):
	topic: Topic
	lessons: List[Lesson]


@router.post("/chat", response_model=ChatResponse)
async def chat(
	req: ChatRequest,
	user: ProfileRow = Depends(get_current_user),
	client: Optional[GeminiClient] = Depends(get_ai_client),
):
	text = await ai_service.get_tutor_response(req.messages, req.context, client)
	return ChatResponse(text=text)


@router.post("/generate", response_model=GeneratedTopic)
async def generate(
	req: GenerateRequest,
	user: ProfileRow = Depends(require_roles("teacher", "admin")),
	client: Optional[GeminiClient] = Depends(get_ai_client),
):
	try:
		return await ai_service.generate_topic_content(req.prompt, req.grade, client)
	except ai_service.AIServiceError as err:
		raise HTTPException(status_code=502, detail=str(err))


@router.post("/publish", status_code=201, response_model=PublishResponse)
def publish(req: PublishRequest, user: ProfileRow = Depends(get_current_user), db: Session = Depends(get_db)):
	topic, lessons = data_service.publish_generated_topic(db, req.subject_id, req.grade, req.topic, actor=user)
	return PublishResponse(
		topic=Topic.model_validate(topic),
		lessons=[Lesson.model_validate(l) for l in lessons],
	)
