import pytest
from pydantic import ValidationError

from cbc_portal.schemas import GeneratedTopic, LessonCreate, LessonDraft, TopicCreate


def test_question_defaults_to_free_text_input():
	draft = LessonDraft(type="question", content="What is 2 + 2?", correct_answer="4", options=["3", "4"])
	assert draft.question_type == "input"
	assert draft.options is None


def test_multiple_choice_options_are_stored_as_json():
	draft = LessonDraft(
		type="question", question_type="mcq", content="Pick the even number",
		options=["3", "4", 5], correct_answer="4",
	)
	assert draft.options == '["3", "4", "5"]'
	assert draft.choices() == ["3", "4", "5"]
	from_json = LessonDraft(
		type="question", question_type="mcq", content="Pick", options='["a", "b"]', correct_answer="a",
	)
	assert from_json.choices() == ["a", "b"]


@pytest.mark.parametrize("fields", [
	{"type": "question", "content": "No answer"},
	{"type": "question", "content": "Blank answer", "correct_answer": "   "},
	{"type": "question", "question_type": "mcq", "content": "One choice", "options": ["a"], "correct_answer": "a"},
	{"type": "question", "question_type": "mcq", "content": "Bad json", "options": "a, b", "correct_answer": "a"},
	{"type": "quiz", "content": "Unknown kind"},
	{"type": "note", "content": ""},
])
def test_invalid_drafts_are_rejected(fields):
	with pytest.raises(ValidationError):
		LessonDraft(**fields)


def test_non_questions_drop_question_fields():
	draft = LessonDraft(
		type="explanation", content="Intro", question_type="mcq", options=["a", "b"],
		correct_answer="a", explanation="why", due_date="2026-01-01",
	)
	assert (draft.question_type, draft.options, draft.correct_answer, draft.explanation) == (None, None, None, None)
	assert draft.due_date is None


def test_assignments_keep_due_date():
	draft = LessonCreate(topic_id=1, type="assignment", content="Worksheet 3", due_date="2026-11-02")
	assert draft.due_date == "2026-11-02"


def test_grade_must_be_one_to_nine():
	with pytest.raises(ValidationError):
		TopicCreate(subject_id=1, grade=10, title="Too far")
	with pytest.raises(ValidationError):
		TopicCreate(subject_id=1, grade=0, title="Too early")


def test_generated_topic_accepts_camel_case_title():
	topic = GeneratedTopic.model_validate({
		"topicTitle": "Angles",
		"lessons": [{"type": "explanation", "content": "An angle is a turn."}],
	})
	assert topic.topic_title == "Angles"
	assert topic.model_dump(by_alias=True)["topicTitle"] == "Angles"
