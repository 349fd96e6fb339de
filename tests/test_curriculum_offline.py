import asyncio

import pytest

from cbc_portal.curriculum import (
	CUSTOM_LESSON_BASE, CUSTOM_TOPIC_BASE, CURRICULUM, MATH, OfflineCurriculum, static_lessons_for,
)
from cbc_portal.navigation import AppContext, NavigationError, Navigator
from cbc_portal.preferences import PreferenceStore
from cbc_portal.schemas import LessonDraft, TopicCreate


@pytest.fixture
def store(tmp_path):
	return PreferenceStore(tmp_path)


@pytest.fixture
def offline(store):
	return OfflineCurriculum(store)


def test_every_grade_has_math_topics():
	assert sorted(CURRICULUM) == list(range(1, 10))
	assert [t.title for t in CURRICULUM[9]] == ["Quadratic Equations", "Trigonometry Basics", "Linear Functions"]
	assert CURRICULUM[9][0].id == 901


def test_quadratics_lessons():
	lessons = static_lessons_for(901)
	assert [l.id for l in lessons] == [9011, 9012, 9013, 9014]
	assert [l.correct_answer for l in lessons if l.type == "question"] == ["2", "2"]


def test_generic_topic_lessons():
	lessons = static_lessons_for(101)
	assert [l.type for l in lessons] == ["explanation", "explanation", "question"]
	assert lessons[-1].content == "What is 10 + 5?"
	assert lessons[-1].correct_answer == "15"


def test_loader_interface(offline):
	assert asyncio.run(offline.subjects_for_grade(4)) == [MATH]
	assert [t.id for t in asyncio.run(offline.topics_for(4, MATH.id))] == [401, 402]
	assert asyncio.run(offline.topics_for(4, 2)) == []
	assert len(asyncio.run(offline.lessons_for(401))) == 3


def test_custom_topic_is_appended_and_persisted(offline, store):
	topic = offline.save_topic(TopicCreate(subject_id=MATH.id, grade=9, title="Polynomials"))
	assert topic.id == CUSTOM_TOPIC_BASE + 1
	assert topic.order_number == 4
	assert [t.title for t in OfflineCurriculum(store).all_topics_for_grade(9)][-1] == "Polynomials"
	second = offline.save_topic(TopicCreate(subject_id=MATH.id, grade=9, title="Surds", order_number=0))
	assert second.id == CUSTOM_TOPIC_BASE + 2
	assert offline.all_topics_for_grade(9)[0].title == "Surds"


def test_custom_lessons_follow_static_ones(offline):
	lesson = offline.save_lesson(901, LessonDraft(type="note", content="Revise the formula"))
	assert lesson.id == CUSTOM_LESSON_BASE + 1
	assert [l.id for l in offline.all_lessons_for_topic(901)] == [9011, 9012, 9013, 9014, lesson.id]

	topic = offline.save_topic(TopicCreate(subject_id=MATH.id, grade=2, title="Money"))
	only = offline.save_lesson(topic.id, LessonDraft(type="question", content="5 + 5 shillings?", correct_answer="10"))
	assert offline.all_lessons_for_topic(topic.id) == [only]


def test_navigator_over_offline_curriculum(offline, store):
	nav = Navigator(offline, AppContext(store))

	async def run():
		await nav.select_grade(9)
		await nav.select_subject(nav.subjects[0])
		await nav.select_topic(nav.topics[0])
	asyncio.run(run())

	assert nav.topic.title == "Quadratic Equations"
	nav.set_answer(9013, " 2 ")
	assert nav.check_answer(9013).correct
	assert [c.back for c in nav.flashcards()] == ["2", "2"]


def test_offline_topics_must_be_math(offline):
	with pytest.raises(NavigationError):
		offline.save_topic(TopicCreate(subject_id=2, grade=3, title="Plants"))
	assert offline.custom_topics() == []


def test_lessons_need_a_known_topic(offline):
	with pytest.raises(NavigationError):
		offline.save_lesson(99999, LessonDraft(type="note", content="Orphan"))
	assert offline.find_topic(901).title == "Quadratic Equations"
	assert offline.custom_lessons() == []
