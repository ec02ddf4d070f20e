"""Exam session state machine: pure transitions plus the commit step."""

import pytest

from app.config import settings
from app.errors import AlreadyCompleted, InvalidInput, InvalidTransition
from app.models.exam_attempt import ExamStatus
from app.services import exam_session as es
from app.services.exam_session import ExamStage
from app.services.scoring import ScoringPolicy

POLICY = ScoringPolicy()


def _at_gatekeeper(unit=5, reviews=()):
    session = es.select_unit(es.new_session(1, POLICY), unit)
    for review in reviews:
        session = es.toggle_review_unit(session, review)
    return es.start_gatekeeper(session)


def test_session_policy_follows_settings(monkeypatch):
    monkeypatch.setattr(settings, "EXAM_GATEKEEPER_THRESHOLD", 80.0)
    monkeypatch.setattr(settings, "EXAM_CURRENT_QUESTION_COUNT", 4)

    session = es.ExamSession(student_id=1)
    assert session.policy.gatekeeper_threshold == 80.0

    session = es.start_gatekeeper(es.select_unit(session, 5))
    assert len(session.current_questions) == 4
    session = es.adjust_mistakes(session, 0, 21)
    assert not es.gatekeeper_met(session)


def test_start_requires_primary_unit():
    with pytest.raises(InvalidTransition):
        es.start_gatekeeper(es.new_session(1, POLICY))


def test_start_creates_empty_question_slots():
    session = _at_gatekeeper()
    assert session.stage is ExamStage.GATEKEEPER_TEST
    assert [q.mistakes for q in session.current_questions] == [0, 0, 0]
    assert es.live_part_score(session) == 100.0


def test_selecting_a_new_unit_clears_reviews():
    session = es.select_unit(es.new_session(1, POLICY), 5)
    session = es.toggle_review_unit(session, 3)
    session = es.select_unit(session, 6)
    assert session.review_units == ()


def test_toggle_review_unit_adds_and_removes():
    session = es.select_unit(es.new_session(1, POLICY), 5)
    session = es.toggle_review_unit(session, 3)
    session = es.toggle_review_unit(session, 4)
    session = es.toggle_review_unit(session, 3)
    assert session.review_units == (4,)
    with pytest.raises(InvalidInput):
        es.toggle_review_unit(session, 5)


def test_gatekeeper_passed_without_reviews_goes_to_summary():
    session = _at_gatekeeper(unit=5)
    for index, mistakes in enumerate([0, 2, 1]):
        session = es.adjust_mistakes(session, index, mistakes)
    assert es.live_part_score(session) == 97.0
    assert es.gatekeeper_met(session)

    session = es.advance(session)
    assert session.stage is ExamStage.SUMMARY
    assert es.summarize(session).passed is True


def test_gatekeeper_passed_with_reviews_goes_to_cumulative_test():
    session = es.advance(_at_gatekeeper(reviews=(3, 4)))
    assert session.stage is ExamStage.CUMULATIVE_TEST
    assert [u for u, _ in session.review_questions] == [3, 4]

    session = es.adjust_review_mistakes(session, 3, 20)
    session = es.confirm_cumulative(session)
    outcome = es.summarize(session)
    # reviews 80 and 100 -> mean 90; (100 + 90) / 2
    assert outcome.final_score == 95.0


def test_gatekeeper_failure_only_allows_forced_end():
    session = _at_gatekeeper(unit=5, reviews=(3,))
    for index, mistakes in enumerate([10, 12, 8]):
        session = es.adjust_mistakes(session, index, mistakes)
    assert es.live_part_score(session) == 70.0

    with pytest.raises(InvalidTransition):
        es.advance(session)

    session = es.force_fail(session)
    assert session.stage is ExamStage.FAILED_EARLY
    outcome = es.summarize(session, passed_override=True)
    assert outcome.passed is False


def test_force_fail_rejected_when_gatekeeper_met():
    with pytest.raises(InvalidTransition):
        es.force_fail(_at_gatekeeper())


def test_mistake_counter_floors_at_zero():
    session = es.adjust_mistakes(_at_gatekeeper(), 0, -3)
    assert session.current_questions[0].mistakes == 0


def test_transitions_do_not_mutate_input():
    before = _at_gatekeeper()
    after = es.adjust_mistakes(before, 1, 4)
    assert before.current_questions[1].mistakes == 0
    assert after.current_questions[1].mistakes == 4


def test_summarize_requires_summary_stage():
    with pytest.raises(InvalidTransition):
        es.summarize(_at_gatekeeper())


def test_question_inputs_cover_current_and_review_questions():
    session = es.advance(_at_gatekeeper(reviews=(3,)))
    session = es.set_question_text(session, "2:255", unit=3)
    session = es.confirm_cumulative(session)
    inputs = es.build_question_inputs(session)
    assert [q.max_weight for q in inputs] == [33, 33, 33, 100]
    assert inputs[-1].unit_reference == 3
    assert inputs[-1].question_text == "2:255"


def test_replay_rebuilds_summary_session():
    session = es.replay(1, 5, [3], [0, 1, 0], {3: 4}, current_texts=["4:24"], policy=POLICY)
    assert session.stage is ExamStage.SUMMARY
    assert session.current_questions[0].text == "4:24"
    assert session.review_slot(3).mistakes == 4


def test_replay_rejects_impossible_sequences():
    with pytest.raises(InvalidInput):
        es.replay(1, 5, [], [0, 0], policy=POLICY)
    with pytest.raises(InvalidInput):
        es.replay(1, 5, [], [0, 0, 0], {3: 1}, policy=POLICY)
    with pytest.raises(InvalidInput):
        es.replay(1, 5, [3], [10, 10, 10], {3: 0}, forced_fail=True, policy=POLICY)
    with pytest.raises(InvalidInput):
        es.replay(1, 5, [], [-1, 0, 0], policy=POLICY)
    with pytest.raises(InvalidTransition):
        es.replay(1, 5, [], [10, 10, 10], policy=POLICY)


async def test_commit_persists_completed_attempt(db_session, student, staff):
    session = es.replay(student.id, 5, [3], [0, 2, 1], {3: 10}, policy=POLICY)

    committed, attempt = await es.commit(session, db_session, staff["examiner"].id)

    assert committed.stage is ExamStage.COMMITTED
    assert committed.attempt_id == attempt.id
    assert attempt.status == ExamStatus.COMPLETED.value
    assert attempt.current_part_score == 97.0
    assert attempt.cumulative_score == 90.0
    assert attempt.final_score == 93.5
    assert attempt.passed is True
    assert len(attempt.questions) == 4

    with pytest.raises(AlreadyCompleted):
        await es.commit(committed, db_session, staff["examiner"].id)


async def test_commit_failed_early_records_failed_attempt(db_session, student, staff):
    session = es.replay(student.id, 5, [], [10, 10, 10], forced_fail=True, policy=POLICY)

    committed, attempt = await es.commit(
        session, db_session, staff["examiner"].id, passed_override=True
    )

    assert committed.stage is ExamStage.FAILED_EARLY
    assert attempt.passed is False
    assert attempt.gatekeeper_passed is False
    assert attempt.final_score == 70.0


async def test_commit_requires_summary(db_session, student, staff):
    with pytest.raises(InvalidTransition):
        await es.commit(_at_gatekeeper(), db_session, staff["examiner"].id)
