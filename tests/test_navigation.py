import asyncio

import pytest

from cbc_portal.navigation import (
	CARD_BACK_FALLBACK, CORRECT_MESSAGE, INCORRECT_MESSAGE, AccessDenied, AppContext, Navigator,
	NavigationError, build_flashcards, is_correct,
)
from cbc_portal.preferences import PreferenceStore
from cbc_portal.schemas import Lesson, Profile, Subject, Topic


MATH = Subject(id=1, name="Mathematics", code="MATH")
COUNTING = Topic(id=101, subject_id=1, grade=1, title="Counting", order_number=1)
ADDING = Topic(id=102, subject_id=1, grade=1, title="Adding", order_number=2)

STUDENT = Profile(id=1, username="amani", role="student")
TEACHER = Profile(id=2, username="mrs_wanjiru", role="teacher")
ADMIN = Profile(id=3, username="admin", role="admin")


def _lessons(topic_id):
	return [
		Lesson(id=topic_id * 10 + 1, topic_id=topic_id, type="explanation", content=f"Intro {topic_id}"),
		Lesson(id=topic_id * 10 + 2, topic_id=topic_id, type="question", question_type="input",
			content="What is 10 + 5?", correct_answer="15", explanation="Count on from 10."),
		Lesson(id=topic_id * 10 + 3, topic_id=topic_id, type="question", question_type="input",
			content="Spell the answer to 10 + 5", correct_answer="fifteen"),
	]


class FakeLoader:
	def __init__(self):
		self.subjects = {1: [MATH]}
		self.topics = {(1, 1): [COUNTING, ADDING]}
		self.lessons = {101: _lessons(101), 102: _lessons(102)}
		self.calls = []
		self.gates = {}
		self.failing = set()

	async def _fetch(self, key, value):
		self.calls.append(key)
		if key in self.failing:
			raise RuntimeError("backend unavailable")
		gate = self.gates.get(key)
		if gate is not None:
			await gate.wait()
		return value

	async def subjects_for_grade(self, grade):
		return await self._fetch(("subjects", grade), self.subjects.get(grade, []))

	async def topics_for(self, grade, subject_id):
		return await self._fetch(("topics", grade, subject_id), self.topics.get((grade, subject_id), []))

	async def lessons_for(self, topic_id):
		return await self._fetch(("lessons", topic_id), self.lessons.get(topic_id, []))


@pytest.fixture
def store(tmp_path):
	return PreferenceStore(tmp_path / "prefs")


@pytest.fixture
def loader():
	return FakeLoader()


@pytest.fixture
def nav(loader, store):
	return Navigator(loader, AppContext(store))


def _open_topic(nav, topic=COUNTING):
	async def run():
		await nav.select_grade(1)
		await nav.select_subject(MATH)
		await nav.select_topic(topic)
	asyncio.run(run())


# Answer checking

@pytest.mark.parametrize("answer,expected", [
	("15", True),
	(" 15 ", True),
	("16", False),
	("", False),
	(None, False),
])
def test_is_correct_trims_the_answer(answer, expected):
	assert is_correct(answer, _lessons(101)[1]) is expected


def test_is_correct_ignores_case():
	assert is_correct(" Fifteen ", _lessons(101)[2])
	expected_upper = Lesson(id=1, topic_id=1, type="question", content="Capital of Kenya?", correct_answer="Nairobi")
	assert is_correct("nairobi", expected_upper)


def test_lesson_without_answer_is_never_correct():
	lesson = Lesson(id=1, topic_id=1, type="question", content="Open question")
	assert not is_correct("", lesson)
	assert not is_correct("anything", lesson)


def test_check_answer_records_feedback(nav):
	_open_topic(nav)
	nav.set_answer(1012, " 15 ")
	feedback = nav.check_answer(1012)
	assert feedback.correct
	assert feedback.message == CORRECT_MESSAGE
	assert feedback.explanation == "Count on from 10."
	assert nav.feedback[1012] == feedback

	nav.set_answer(1013, "fiveteen")
	assert nav.check_answer(1013).message == INCORRECT_MESSAGE
	# Unanswered questions are checked against an empty answer
	nav.answers.clear()
	assert not nav.check_answer(1012).correct


def test_check_answer_rejects_non_questions_and_foreign_lessons(nav):
	_open_topic(nav)
	with pytest.raises(NavigationError):
		nav.check_answer(1011)
	with pytest.raises(NavigationError):
		nav.set_answer(1022, "15")


def test_flashcards_only_cover_questions():
	lessons = _lessons(101) + [Lesson(id=9, topic_id=101, type="question", content="Why?")]
	cards = build_flashcards(lessons)
	assert [c.back for c in cards] == ["15", "fifteen", CARD_BACK_FALLBACK]
	assert cards[0].front == "What is 10 + 5?"


# Navigation

def test_grade_subject_topic_flow(nav):
	_open_topic(nav)
	assert nav.view == "lesson"
	assert (nav.grade, nav.subject, nav.topic) == (1, MATH, COUNTING)
	assert [l.id for l in nav.lessons] == [1011, 1012, 1013]
	assert not nav.is_loading


def test_back_walks_up_the_stack(nav):
	_open_topic(nav)
	assert nav.back() == "topics"
	assert nav.back() == "subjects"
	assert nav.back() == "grades"
	assert nav.back() == "grades"


def test_new_grade_forgets_the_previous_subject_and_topic(nav):
	_open_topic(nav)
	nav.back()
	nav.back()
	asyncio.run(nav.select_grade(1))
	assert (nav.subject, nav.topic) == (MATH, COUNTING)
	asyncio.run(nav.select_grade(2))
	assert nav.grade == 2
	assert (nav.subject, nav.topic) == (None, None)


def test_invalid_grade_and_subject_without_grade(nav):
	with pytest.raises(NavigationError):
		asyncio.run(nav.select_grade(10))
	with pytest.raises(NavigationError):
		asyncio.run(nav.select_subject(MATH))


def test_same_key_reuses_the_loaded_list(nav, loader):
	async def run():
		await nav.select_grade(1)
		await nav.select_grade(1)
		await nav.select_grade(2)
		await nav.select_grade(1)
	asyncio.run(run())
	assert loader.calls == [("subjects", 1), ("subjects", 2), ("subjects", 1)]
	assert nav.subjects == [MATH]


def test_selecting_a_topic_clears_answers_before_lessons_arrive(nav, loader):
	_open_topic(nav)
	nav.set_answer(1012, "15")
	nav.check_answer(1012)

	async def run():
		gate = loader.gates[("lessons", 102)] = asyncio.Event()
		task = asyncio.create_task(nav.select_topic(ADDING))
		await asyncio.sleep(0)
		snapshot = (dict(nav.answers), dict(nav.feedback), list(nav.lessons), nav.is_loading)
		gate.set()
		await task
		return snapshot

	answers, feedback, lessons, loading = asyncio.run(run())
	assert (answers, feedback, lessons, loading) == ({}, {}, [], True)
	assert [l.topic_id for l in nav.lessons] == [102, 102, 102]


def test_stale_response_does_not_overwrite_newer_selection(nav, loader):
	async def run():
		await nav.select_grade(1)
		await nav.select_subject(MATH)
		gate = loader.gates[("lessons", 101)] = asyncio.Event()
		slow = asyncio.create_task(nav.select_topic(COUNTING))
		await asyncio.sleep(0)
		await nav.select_topic(ADDING)
		gate.set()
		await slow

	asyncio.run(run())
	assert nav.topic == ADDING
	assert {l.topic_id for l in nav.lessons} == {102}
	assert not nav.is_loading


def test_failed_fetch_leaves_an_empty_list(nav, loader):
	loader.failing.add(("subjects", 3))
	assert asyncio.run(nav.select_grade(3)) == []
	assert nav.view == "subjects"
	assert not nav.is_loading
	# A failed key is fetched again on the next selection
	loader.failing.clear()
	loader.subjects[3] = [MATH]
	asyncio.run(nav.select_grade(3))
	assert nav.subjects == [MATH]


def test_refresh_refetches_and_keeps_answers(nav, loader):
	_open_topic(nav)
	nav.set_answer(1012, "15")
	loader.lessons[101] = _lessons(101)[:2]
	asyncio.run(nav.refresh())
	assert [l.id for l in nav.lessons] == [1011, 1012]
	assert nav.answers == {1012: "15"}
	assert loader.calls.count(("lessons", 101)) == 2


# Destinations and profile

def test_destinations_need_a_profile(nav):
	with pytest.raises(AccessDenied):
		nav.go_to("ebooks")
	with pytest.raises(NavigationError):
		nav.go_to("casino")
	assert nav.go_to("grades") == "grades"


@pytest.mark.parametrize("profile,allowed,denied", [
	(STUDENT, ["ebooks", "audiobooks", "projects", "cards", "theme"], ["admin", "teacher"]),
	(TEACHER, ["teacher", "projects"], ["admin"]),
	(ADMIN, ["admin", "ebooks"], ["teacher"]),
])
def test_role_gated_destinations(nav, profile, allowed, denied):
	nav.sign_in(profile)
	for destination in allowed:
		assert nav.go_to(destination) == destination
	for destination in denied:
		with pytest.raises(AccessDenied):
			nav.go_to(destination)


def test_sign_out_leaves_protected_pages(nav, store):
	nav.sign_in(TEACHER)
	assert store.get_session() == TEACHER
	nav.go_to("teacher")
	nav.sign_out()
	assert nav.view == "grades"
	assert nav.context.profile is None
	assert store.get_session() is None


def test_context_loads_saved_session_and_theme(store):
	store.set_session(STUDENT)
	context = AppContext.load(store)
	assert context.profile == STUDENT
	assert context.role == "student"
	assert context.theme.primary == "#4f46e5"


def test_apply_preset_keeps_mode_and_persists(store):
	context = AppContext(store)
	context.update_theme(context.theme.model_copy(update={"mode": "dark"}))
	theme = context.apply_preset("Forest Green")
	assert (theme.mode, theme.primary, theme.accent) == ("dark", "#059669", "#f59e0b")
	assert store.get_theme() == theme
	with pytest.raises(NavigationError):
		context.apply_preset("Plaid")
