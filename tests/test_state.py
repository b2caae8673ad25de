"""Tests for the job model invariants and the state machine."""

import pytest
from hypothesis import given, settings, strategies as st
from pydantic import ValidationError

from imgcompress.errors import InvalidStateTransitionError
from imgcompress.jobs import state
from imgcompress.jobs.models import InputUnit, JobRecord, JobResult, JobStats, JobStatus

RESULT = JobResult(data=b"out", media_type="image/png")


def _job() -> JobRecord:
    return JobRecord(payload=InputUnit(name="a.png", data=b"abcdef"))


class TestInvariants:
    def test_done_requires_result_and_stats(self) -> None:
        with pytest.raises(ValidationError):
            JobRecord(payload=InputUnit(name="a.png", data=b"x"), status=JobStatus.DONE)

    def test_error_requires_message(self) -> None:
        with pytest.raises(ValidationError):
            JobRecord(payload=InputUnit(name="a.png", data=b"x"), status=JobStatus.ERROR)

    def test_queued_cannot_carry_a_result(self) -> None:
        stats = JobStats(original_size=1, optimized_size=1, time_taken=0)
        with pytest.raises(ValidationError):
            JobRecord(payload=InputUnit(name="a.png", data=b"x"), result=RESULT, stats=stats)

    def test_savings_percent(self) -> None:
        stats = JobStats(original_size=200, optimized_size=50, time_taken=1)
        assert stats.savings_percent == 75.0
        assert JobStats(original_size=0, optimized_size=0, time_taken=0).savings_percent == 0.0


class TestTransitions:
    def test_happy_path(self) -> None:
        started = state.start(_job(), estimated_duration=1500)
        assert started.status == JobStatus.PROCESSING
        assert started.started_at is not None
        assert started.estimated_duration == 1500

        done = state.complete(started, RESULT, time_taken=42.0, is_original=False)
        assert done.progress == 100
        assert done.stats.original_size == 6
        assert done.stats.optimized_size == 3
        assert done.completed_at is not None

    def test_vector_bypass_goes_straight_to_done(self) -> None:
        done = state.complete(_job(), RESULT, time_taken=0, is_original=True)
        assert done.status == JobStatus.DONE
        assert done.stats.is_original

    def test_queued_cannot_fail(self) -> None:
        with pytest.raises(InvalidStateTransitionError):
            state.fail(_job(), "nope")

    def test_terminal_states_are_final(self) -> None:
        failed = state.fail(state.start(_job(), 1), "boom")
        assert failed.error == "boom"
        with pytest.raises(InvalidStateTransitionError):
            state.start(failed, 1)
        with pytest.raises(InvalidStateTransitionError):
            state.complete(failed, RESULT, 1, False)

    def test_empty_failure_message_gets_a_default(self) -> None:
        assert state.fail(state.start(_job(), 1), "").error == "Unknown error"

    def test_recover_only_touches_processing(self) -> None:
        queued = _job()
        assert state.recover(queued) is queued
        recovered = state.recover(state.start(queued, 900))
        assert recovered.status == JobStatus.QUEUED
        assert recovered.progress == 0
        assert state.recover(recovered) == recovered


_ACTIONS = st.lists(st.sampled_from(["start", "complete", "fail", "recover"]), max_size=12)


@settings(max_examples=200)
@given(actions=_ACTIONS)
def test_any_action_sequence_keeps_outcome_exclusive(actions) -> None:
    """Whatever is attempted, result/stats exist iff done and error iff error."""
    job = _job()
    for action in actions:
        try:
            if action == "start":
                job = state.start(job, 100)
            elif action == "complete":
                job = state.complete(job, RESULT, 1, False)
            elif action == "fail":
                job = state.fail(job, "x")
            else:
                job = state.recover(job)
        except InvalidStateTransitionError:
            pass
        assert (job.status == JobStatus.DONE) == (job.result is not None)
        assert (job.status == JobStatus.DONE) == (job.stats is not None)
        assert (job.status == JobStatus.ERROR) == (job.error is not None)
