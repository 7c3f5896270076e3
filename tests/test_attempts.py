import pytest

from db import SessionLocal
from errors import ConflictError, ForbiddenError, InputValidationError, InvalidStateError, NotFoundError
from models import Attempt, AttemptStatus

from conftest import BROWSER


def start(services, quiz_id, user="u1"):
    return services.attempts.start_attempt(user, quiz_id, BROWSER, "127.0.0.1")


def test_start_creates_attempt_with_time_budget(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    assert a.status == AttemptStatus.STARTED
    assert a.attempt_number == 1
    assert a.time_budget == 600
    assert a.remaining_time == 600
    assert a.total_questions == 2
    assert a.answered_questions == [] and a.flagged_questions == [] and a.skipped_questions == []
    assert a.browser_info["platform"] == "linux"


def test_time_per_question_overrides_flat_limit(services, make_quiz):
    qid = make_quiz(time_per_question=45)
    assert start(services, qid).time_budget == 90


def test_start_twice_returns_same_attempt(services, make_quiz):
    qid = make_quiz()
    first = start(services, qid)
    again = start(services, qid)
    assert again.id == first.id
    assert again.status == AttemptStatus.IN_PROGRESS
    assert len(services.attempts.list_attempts("u1", qid)) == 1


def test_start_resumes_paused_attempt(services, make_quiz, clock):
    qid = make_quiz(allow_pause=True)
    a = start(services, qid)
    services.attempts.save_answer(a.id, 0, 1, 3)
    services.attempts.pause(a.id)
    clock.advance(seconds=30)
    again = start(services, qid)
    assert again.id == a.id
    assert again.status == AttemptStatus.IN_PROGRESS
    assert again.paused_at is None
    assert again.paused_seconds == 30


def test_start_unknown_quiz_is_not_found(services):
    with pytest.raises(NotFoundError):
        start(services, 999)


def test_start_unpublished_quiz_is_invalid_state(services, make_quiz):
    qid = make_quiz(is_published=False)
    with pytest.raises(InvalidStateError):
        start(services, qid)


def test_start_blocked_or_uninvited_user_is_forbidden(services, make_quiz):
    blocked = make_quiz(blocked_users=["u1"])
    private = make_quiz(access_type="private", allowed_users=["u2"])
    with pytest.raises(ForbiddenError):
        start(services, blocked)
    with pytest.raises(ForbiddenError):
        start(services, private)
    assert start(services, private, user="u2").user_id == "u2"


def test_max_attempts_without_retake(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    services.attempts.submit_attempt(a.id)
    with pytest.raises(InvalidStateError, match="Maximum attempts"):
        start(services, qid)


def test_retake_gets_next_attempt_number(services, make_quiz):
    qid = make_quiz(allow_retake=True, max_attempts=2)
    a = start(services, qid)
    services.attempts.submit_attempt(a.id)
    b = start(services, qid)
    assert b.id != a.id
    assert b.attempt_number == 2
    services.attempts.submit_attempt(b.id)
    with pytest.raises(InvalidStateError):
        start(services, qid)


def test_retake_delay_is_enforced(services, make_quiz, clock):
    qid = make_quiz(allow_retake=True, max_attempts=3, retake_delay_hours=1)
    a = start(services, qid)
    services.attempts.submit_attempt(a.id)
    clock.advance(minutes=30)
    with pytest.raises(InvalidStateError, match="Retake"):
        start(services, qid)
    clock.advance(minutes=31)
    assert start(services, qid).attempt_number == 2


def test_save_answer_overwrites_same_index(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    services.attempts.save_answer(a.id, 0, 2, 4)
    a = services.attempts.save_answer(a.id, 0, 1, 6)
    assert a.status == AttemptStatus.IN_PROGRESS
    assert a.answered_questions == [0]
    assert len(a.answers) == 1
    assert a.answers[0]["question_index"] == 0
    assert a.answers[0]["selected_option"] == 1
    assert a.answers[0]["time_spent"] == 6


def test_save_answer_clears_skip(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    a = services.attempts.skip_question(a.id, 1)
    assert a.skipped_questions == [1]
    a = services.attempts.save_answer(a.id, 1, 0, 2)
    assert a.skipped_questions == []
    assert a.answered_questions == [1]
    # skipping an answered question keeps it answered
    a = services.attempts.skip_question(a.id, 1)
    assert a.skipped_questions == []


def test_save_answer_rejects_bad_input(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    with pytest.raises(InputValidationError):
        services.attempts.save_answer(a.id, 0, -1, 1)
    with pytest.raises(InputValidationError):
        services.attempts.save_answer(a.id, 2, 0, 1)
    with pytest.raises(InputValidationError):
        services.attempts.save_answer(a.id, 0, 0, -5)


def test_save_answer_requires_answerable_status(services, make_quiz):
    qid = make_quiz(allow_pause=True)
    a = start(services, qid)
    services.attempts.save_answer(a.id, 0, 1, 1)
    services.attempts.pause(a.id)
    with pytest.raises(InvalidStateError):
        services.attempts.save_answer(a.id, 1, 1, 1)
    assert services.attempts.get_attempt(a.id).answered_questions == [0]


def test_save_answer_unknown_attempt(services):
    with pytest.raises(NotFoundError):
        services.attempts.save_answer(12345, 0, 0, 0)


def test_navigate_bounds(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    services.attempts.save_answer(a.id, 0, 1, 1)
    assert services.attempts.navigate(a.id, 1).current_question_index == 1
    for bad in (-1, 2, 10):
        with pytest.raises(InputValidationError):
            services.attempts.navigate(a.id, bad)
    assert services.attempts.get_attempt(a.id).current_question_index == 1


def test_navigate_single_question_quiz(services, make_quiz):
    qid = make_quiz(questions=[{"prompt": "1 + 1", "options": ["2", "3"], "correct_option": 0}])
    a = start(services, qid)
    services.attempts.save_answer(a.id, 0, 0, 1)
    assert services.attempts.navigate(a.id, 0).current_question_index == 0
    with pytest.raises(InputValidationError):
        services.attempts.navigate(a.id, 1)


def test_navigate_requires_in_progress(services, make_quiz):
    qid = make_quiz(allow_pause=True)
    a = start(services, qid)
    with pytest.raises(InvalidStateError):
        services.attempts.navigate(a.id, 1)
    services.attempts.save_answer(a.id, 0, 1, 1)
    services.attempts.pause(a.id)
    with pytest.raises(InvalidStateError):
        services.attempts.navigate(a.id, 1)


def test_pause_then_resume(services, make_quiz, clock):
    qid = make_quiz(allow_pause=True)
    a = start(services, qid)
    services.attempts.save_answer(a.id, 0, 1, 1)
    a = services.attempts.pause(a.id)
    assert a.status == AttemptStatus.PAUSED
    assert a.paused_at == clock.now
    clock.advance(seconds=20)
    a = services.attempts.resume(a.id)
    assert a.status == AttemptStatus.IN_PROGRESS
    assert a.paused_at is None
    assert a.paused_seconds == 20


def test_pause_rejected_when_quiz_disallows(services, make_quiz):
    qid = make_quiz(allow_pause=False)
    a = start(services, qid)
    with pytest.raises(InvalidStateError, match="Pausing"):
        services.attempts.pause(a.id)
    services.attempts.save_answer(a.id, 0, 1, 1)
    with pytest.raises(InvalidStateError, match="Pausing"):
        services.attempts.pause(a.id)
    services.attempts.submit_attempt(a.id)
    with pytest.raises(InvalidStateError, match="Pausing"):
        services.attempts.pause(a.id)


def test_pause_and_resume_wrong_state(services, make_quiz):
    qid = make_quiz(allow_pause=True)
    a = start(services, qid)
    # still "started"
    with pytest.raises(InvalidStateError):
        services.attempts.pause(a.id)
    with pytest.raises(InvalidStateError):
        services.attempts.resume(a.id)
    services.attempts.save_answer(a.id, 0, 1, 1)
    services.attempts.pause(a.id)
    with pytest.raises(InvalidStateError):
        services.attempts.pause(a.id)


def test_review_flags_are_idempotent(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    services.attempts.save_answer(a.id, 1, 0, 1)
    services.attempts.mark_for_review(a.id, 1)
    a = services.attempts.mark_for_review(a.id, 1)
    assert a.flagged_questions == [1]
    assert a.answers[0]["marked_for_review"] is True
    services.attempts.unmark_for_review(a.id, 1)
    a = services.attempts.unmark_for_review(a.id, 1)
    assert a.flagged_questions == []
    assert a.answers[0]["marked_for_review"] is False


def test_flag_carries_into_later_answer(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    services.attempts.mark_for_review(a.id, 0)
    a = services.attempts.save_answer(a.id, 0, 1, 1)
    assert a.answers[0]["marked_for_review"] is True


def test_tab_switch_counts_but_copy_paste_does_not(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    a = services.attempts.record_suspicious_activity(a.id, "tab_switch")
    assert a.tab_switch_count == 1
    assert len(a.suspicious_activity) == 1
    a = services.attempts.record_suspicious_activity(a.id, "tab_switch", "alt-tab")
    assert a.tab_switch_count == 2
    a = services.attempts.record_suspicious_activity(a.id, "copy_paste")
    assert a.tab_switch_count == 2
    assert [e["type"] for e in a.suspicious_activity] == ["tab_switch", "tab_switch", "copy_paste"]
    assert a.suspicious_activity[1]["details"] == "alt-tab"


def test_activity_logged_on_finished_attempt(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    services.attempts.submit_attempt(a.id)
    a = services.attempts.record_suspicious_activity(a.id, "window_blur")
    assert a.status == AttemptStatus.COMPLETED
    assert len(a.suspicious_activity) == 1


def test_submit_excludes_paused_time(services, make_quiz, clock):
    qid = make_quiz(allow_pause=True)
    a = start(services, qid)
    services.attempts.save_answer(a.id, 0, 1, 1)
    clock.advance(seconds=60)
    services.attempts.pause(a.id)
    clock.advance(seconds=100)
    services.attempts.resume(a.id)
    clock.advance(seconds=40)
    a = services.attempts.submit_attempt(a.id)
    assert a.status == AttemptStatus.COMPLETED
    assert a.completed_at == clock.now
    assert a.time_spent == 100
    assert a.remaining_time == 500
    assert a.active_slot is None


def test_submit_from_paused_closes_pause(services, make_quiz, clock):
    qid = make_quiz(allow_pause=True)
    a = start(services, qid)
    services.attempts.save_answer(a.id, 0, 1, 1)
    clock.advance(seconds=10)
    services.attempts.pause(a.id)
    clock.advance(seconds=50)
    a = services.attempts.submit_attempt(a.id)
    assert a.paused_at is None
    assert a.time_spent == 10


def test_submit_twice_is_rejected_and_leaves_record(services, make_quiz, clock):
    qid = make_quiz()
    a = start(services, qid)
    first = services.attempts.submit_attempt(a.id)
    clock.advance(seconds=30)
    with pytest.raises(InvalidStateError, match="already submitted"):
        services.attempts.submit_attempt(a.id)
    after = services.attempts.get_attempt(a.id)
    assert after.version == first.version
    assert after.completed_at == first.completed_at


def test_update_progress(services, make_quiz, clock):
    qid = make_quiz()
    a = start(services, qid)
    clock.advance(seconds=15)
    a = services.attempts.update_progress(a.id, 15, 585)
    assert (a.time_spent, a.remaining_time) == (15, 585)
    assert a.last_active_at == clock.now
    with pytest.raises(InputValidationError):
        services.attempts.update_progress(a.id, -1, 10)
    services.attempts.submit_attempt(a.id)
    with pytest.raises(InvalidStateError):
        services.attempts.update_progress(a.id, 20, 580)


def test_other_user_cannot_modify(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    with pytest.raises(ForbiddenError):
        services.attempts.save_answer(a.id, 0, 1, 1, user_id="intruder")
    with pytest.raises(ForbiddenError):
        services.attempts.submit_attempt(a.id, user_id="intruder")
    assert services.attempts.get_attempt(a.id).status == AttemptStatus.STARTED


def test_active_attempt_lookup(services, make_quiz):
    qid = make_quiz(allow_retake=True, max_attempts=2)
    assert services.attempts.get_active_attempt("u1", qid) is None
    a = start(services, qid)
    assert services.attempts.get_active_attempt("u1", qid).id == a.id
    services.attempts.submit_attempt(a.id)
    assert services.attempts.get_active_attempt("u1", qid) is None
    b = start(services, qid)
    assert [x.id for x in services.attempts.list_attempts("u1", qid)] == [b.id, a.id]


def test_duplicate_insert_returns_existing(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    dup = Attempt(
        user_id="u1",
        quiz_id=qid,
        attempt_number=2,
        status=AttemptStatus.STARTED,
        active_slot=a.active_slot,
        started_at=a.started_at,
        last_active_at=a.started_at,
        time_budget=600,
        total_questions=2,
    )
    row, created = services.attempts.store.insert_or_get_active(dup)
    assert created is False
    assert row.id == a.id


def test_concurrent_write_is_retried(services, make_quiz):
    qid = make_quiz()
    a = start(services, qid)
    calls = []

    def apply(row):
        calls.append(row.version)
        if len(calls) == 1:
            # another writer lands between our read and our commit
            with SessionLocal() as other:
                other.get(Attempt, a.id).tab_switch_count += 5
                other.commit()
        row.current_question_index = 1

    row = services.attempts.store.mutate(a.id, apply)
    assert len(calls) == 2
    assert row.tab_switch_count == 5
    assert row.current_question_index == 1


def test_persistent_conflict_raises(services, make_quiz, caplog):
    qid = make_quiz()
    a = start(services, qid)

    def apply(row):
        with SessionLocal() as other:
            other.get(Attempt, a.id).tab_switch_count += 1
            other.commit()
        row.current_question_index = 1

    with pytest.raises(ConflictError, match=f"Attempt {a.id} was modified concurrently"):
        services.attempts.store.mutate(a.id, apply)
    assert services.attempts.get_attempt(a.id).current_question_index == 0
    assert f"giving up on attempt {a.id}" in caplog.text


def test_taken_attempt_number_is_not_a_duplicate_start(services, make_quiz):
    qid = make_quiz(allow_retake=True, max_attempts=3)
    a = start(services, qid)
    services.attempts.submit_attempt(a.id)
    clash = Attempt(
        user_id="u1",
        quiz_id=qid,
        attempt_number=a.attempt_number,
        status=AttemptStatus.STARTED,
        active_slot=a.active_slot,
        started_at=a.started_at,
        last_active_at=a.started_at,
        time_budget=600,
        total_questions=2,
    )
    with pytest.raises(ConflictError, match="Could not start attempt"):
        services.attempts.store.insert_or_get_active(clash)
    assert services.attempts.get_active_attempt("u1", qid) is None


def test_attempt_numbers_continue_past_gaps(services, make_quiz):
    qid = make_quiz(allow_retake=True, max_attempts=5)
    a = start(services, qid)
    services.attempts.submit_attempt(a.id)
    with SessionLocal() as db:
        db.get(Attempt, a.id).attempt_number = 4
        db.commit()
    assert services.attempts.store.count("u1", qid) == 1
    assert start(services, qid).attempt_number == 5
