"""Tutoring and bulk lesson generation on top of the Gemini client."""
from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, Optional, Sequence

from pydantic import ValidationError

from .gemini_client import GeminiClient
from .schemas import ChatMessage, GeneratedTopic, TutorContext
from .settings import settings


logger = logging.getLogger(__name__)

TUTOR_FALLBACK = "I'm sorry, I'm having a little trouble thinking right now. Can we try that again?"
TUTOR_EMPTY_REPLY = "Sorry, I missed that. Try again?"

# Gemini responseSchema for generated topics
TOPIC_SCHEMA: Dict[str, Any] = {
	"type": "OBJECT",
	"properties": {
		"topicTitle": {"type": "STRING"},
		"lessons": {
			"type": "ARRAY",
			"items": {
				"type": "OBJECT",
				"properties": {
					"type": {"type": "STRING", "enum": ["explanation", "question", "assignment", "note"]},
					"content": {"type": "STRING"},
					"question_type": {"type": "STRING", "enum": ["input", "mcq"]},
					"options": {"type": "ARRAY", "items": {"type": "STRING"}},
					"correct_answer": {"type": "STRING"},
					"explanation": {"type": "STRING"},
				},
				"required": ["type", "content"],
			},
		},
	},
	"required": ["topicTitle", "lessons"],
}


class AIServiceError(Exception):
	pass


class MalformedAIResponse(AIServiceError):
	pass


def build_tutor_instruction(context: TutorContext) -> str:
	return (
		'You are "MathMaster AI", an expert, friendly math tutor.\n'
		f"The student is in Grade {context.grade}.\n"
		f"Currently studying: {context.topic}.\n"
		f"Current lesson context: {context.lesson_content or 'General math overview'}.\n\n"
		"Guidelines:\n"
		"1. Be encouraging and patient.\n"
		"2. Don't just give the answer; guide the student through steps.\n"
		f"3. Use simple, clear language appropriate for a Grade {context.grade} student.\n"
		"4. If they ask for an explanation, use relatable analogies.\n"
		"5. Format your output in clean Markdown."
	)


def build_generation_prompt(prompt: str, grade: int) -> str:
	return (
		"You are a curriculum author for a Grade 1-9 learning portal.\n"
		f"Create ONE topic for Grade {grade} students based on this request:\n{prompt.strip()}\n\n"
		"Requirements:\n"
		"- Start with at least one explanation lesson, then mix in practice questions.\n"
		"- Lesson type is one of explanation, question, assignment, note.\n"
		"- Questions set question_type to input or mcq and always give correct_answer; mcq questions list 3-4 options and correct_answer must equal one of them.\n"
		"- Add a short explanation to every question.\n"
		"- Keep the language appropriate for the grade.\n\n"
		"Return ONLY a JSON object with keys topicTitle (string) and lessons (array)."
	)


async def get_tutor_response(
	history: Sequence[ChatMessage],
	context: TutorContext,
	client: Optional[GeminiClient] = None,
) -> str:
	"""Ask the tutor for its next turn. Never raises: failures return a canned reply."""
	owned = client is None
	try:
		if client is None:
			client = GeminiClient(model=settings.gemini_model_tutor)
		text = await client.generate_chat(
			history,
			system_instruction=build_tutor_instruction(context),
			temperature=0.7,
		)
	except Exception:
		logger.exception("Tutor completion failed for grade %s topic %r", context.grade, context.topic)
		return TUTOR_FALLBACK
	finally:
		if owned and client is not None:
			await client.aclose()
	return (text or "").strip() or TUTOR_EMPTY_REPLY


def _extract_json_block(text: str) -> Dict[str, Any]:
	try:
		return json.loads(text)
	except Exception:
		pass
	# Models sometimes wrap the object in a markdown fence
	match = re.search(r"\{[\s\S]*\}", text or "")
	if match:
		try:
			return json.loads(match.group(0))
		except Exception:
			pass
	raise ValueError("response is not JSON")


def parse_generated_topic(text: str) -> GeneratedTopic:
	try:
		data = _extract_json_block(text)
		if not isinstance(data, dict):
			raise ValueError("expected a JSON object")
		return GeneratedTopic.model_validate(data)
	except (ValueError, ValidationError) as err:
		raise MalformedAIResponse(f"Malformed AI response: {err}") from err


async def generate_topic_content(prompt: str, grade: int, client: Optional[GeminiClient] = None) -> GeneratedTopic:
	"""Generate a topic with its lessons. Raises instead of returning partial data."""
	if not (prompt or "").strip():
		raise AIServiceError("A prompt is required to generate content")
	owned = client is None
	try:
		if client is None:
			client = GeminiClient()
		text = await client.generate_json(build_generation_prompt(prompt, grade), schema=TOPIC_SCHEMA)
	except Exception as err:
		logger.exception("Content generation failed for grade %s", grade)
		raise AIServiceError(f"AI content generation failed: {err}") from err
	finally:
		if owned and client is not None:
			await client.aclose()
	generated = parse_generated_topic(text)
	logger.info("Generated topic %r with %d lessons", generated.topic_title, len(generated.lessons))
	return generated
