"""Built-in mathematics curriculum with locally authored topics and lessons layered on top.

Used when the portal runs without a database (``CURRICULUM_SOURCE=offline``).
"""
from __future__ import annotations

from typing import Dict, List, Optional

from .navigation import NavigationError
from .preferences import CUSTOM_LESSONS_KEY, CUSTOM_TOPICS_KEY, PreferenceStore
from .schemas import Lesson, LessonDraft, Subject, Topic, TopicCreate


MATH = Subject(id=1, name="Mathematics", code="MATH")

_TITLES: Dict[int, List[str]] = {
	1: ["Counting to 20", "Basic Addition"],
	2: ["Place Value", "Subtraction within 100"],
	3: ["Multiplication Tables", "Fractions Intro"],
	4: ["Long Division", "Decimals"],
	5: ["Algebraic Thinking", "Volume and Geometry"],
	6: ["Ratios and Proportions", "Negative Numbers"],
	7: ["Probability", "Linear Equations"],
	8: ["Pythagorean Theorem", "Exponents"],
	9: ["Quadratic Equations", "Trigonometry Basics", "Linear Functions"],
}

# Topic ids are grade * 100 + position, e.g. 901 is the first Grade 9 topic
CURRICULUM: Dict[int, List[Topic]] = {
	grade: [
		Topic(id=grade * 100 + n, subject_id=MATH.id, grade=grade, title=title, order_number=n)
		for n, title in enumerate(titles, start=1)
	]
	for grade, titles in _TITLES.items()
}

QUADRATICS_TOPIC_ID = 901
CUSTOM_TOPIC_BASE = 10_000
CUSTOM_LESSON_BASE = 1_000_000


def static_lessons_for(topic_id: int) -> List[Lesson]:
	def lesson(n: int, **fields) -> Lesson:
		return Lesson(id=topic_id * 10 + n, topic_id=topic_id, **fields)

	lessons = [lesson(1, type="explanation", content="Welcome to this lesson! Let's explore the core concepts.")]
	if topic_id == QUADRATICS_TOPIC_ID:
		lessons += [
			lesson(2, type="explanation", content=(
				"A quadratic equation is any equation that can be rearranged in standard form as "
				"ax² + bx + c = 0 where x represents an unknown, and a, b, and c represent known "
				"numbers, with a ≠ 0."
			)),
			lesson(3, type="question", question_type="input", content="What is the degree of a quadratic equation?",
				correct_answer="2", explanation="Look at the highest power of x."),
			lesson(4, type="question", question_type="input", content="Solve for x: x² - 4 = 0 (Enter positive root)",
				correct_answer="2"),
		]
		return lessons
	lessons += [
		lesson(2, type="explanation", content=(
			"In this section, we build on our foundational knowledge to solve more complex problems."
		)),
		lesson(3, type="question", question_type="input", content="What is 10 + 5?", correct_answer="15"),
	]
	return lessons


class OfflineCurriculum:
	"""Navigator loader backed by the static curriculum and a preference store."""

	def __init__(self, store: PreferenceStore) -> None:
		self.store = store

	def custom_topics(self) -> List[Topic]:
		return [Topic.model_validate(t) for t in self.store.read(CUSTOM_TOPICS_KEY) or []]

	def custom_lessons(self) -> List[Lesson]:
		return [Lesson.model_validate(l) for l in self.store.read(CUSTOM_LESSONS_KEY) or []]

	def save_topic(self, data: TopicCreate) -> Topic:
		if data.subject_id != MATH.id:
			raise NavigationError(f"Offline topics belong to {MATH.name} (subject {MATH.id}), got subject {data.subject_id}")
		topics = self.custom_topics()
		order_number = data.order_number
		if order_number is None:
			order_number = len(self.all_topics_for_grade(data.grade)) + 1
		topic = Topic(
			id=max([t.id for t in topics], default=CUSTOM_TOPIC_BASE) + 1,
			subject_id=data.subject_id,
			grade=data.grade,
			title=data.title,
			order_number=order_number,
		)
		self.store.write(CUSTOM_TOPICS_KEY, [t.model_dump(mode="json") for t in topics + [topic]])
		return topic

	def save_lesson(self, topic_id: int, draft: LessonDraft) -> Lesson:
		if self.find_topic(topic_id) is None:
			raise NavigationError(f"Topic {topic_id} not found")
		lessons = self.custom_lessons()
		lesson = Lesson(
			id=max([l.id for l in lessons], default=CUSTOM_LESSON_BASE) + 1,
			topic_id=topic_id,
			**draft.model_dump(exclude={"topic_id"}),
		)
		self.store.write(CUSTOM_LESSONS_KEY, [l.model_dump(mode="json") for l in lessons + [lesson]])
		return lesson

	def find_topic(self, topic_id: int) -> Optional[Topic]:
		for topic in [t for topics in CURRICULUM.values() for t in topics] + self.custom_topics():
			if topic.id == topic_id:
				return topic
		return None

	def all_topics_for_grade(self, grade: int) -> List[Topic]:
		topics = CURRICULUM.get(grade, []) + [t for t in self.custom_topics() if t.grade == grade]
		return sorted(topics, key=lambda t: t.order_number)

	def all_lessons_for_topic(self, topic_id: int) -> List[Lesson]:
		static = static_lessons_for(topic_id) if topic_id < CUSTOM_TOPIC_BASE else []
		return static + [l for l in self.custom_lessons() if l.topic_id == topic_id]

	async def subjects_for_grade(self, grade: int) -> List[Subject]:
		subject_ids = {t.subject_id for t in self.all_topics_for_grade(grade)}
		return [MATH] if MATH.id in subject_ids else []

	async def topics_for(self, grade: int, subject_id: int) -> List[Topic]:
		return [t for t in self.all_topics_for_grade(grade) if t.subject_id == subject_id]

	async def lessons_for(self, topic_id: int) -> List[Lesson]:
		return self.all_lessons_for_topic(topic_id)
