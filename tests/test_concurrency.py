"""Racing transitions against one submission"""
import threading

import pytest

from docuflow.domain.enums import SubmissionStatus
from docuflow.domain.errors import ConcurrentModificationError, InvalidTransitionError, UnauthorizedError
from docuflow.services.submission_service import retry_on_conflict


class GatedRepository:
    """Wraps a repository so every caller loads before anyone commits"""

    def __init__(self, inner, parties: int):
        self._inner = inner
        self._barrier = threading.Barrier(parties, timeout=5)

    def load(self, submission_id):
        submission = self._inner.load(submission_id)
        self._barrier.wait()
        return submission

    def __getattr__(self, name):
        return getattr(self._inner, name)


def _race(calls):
    results, errors = [], []
    lock = threading.Lock()

    def run(call):
        try:
            outcome = call()
            with lock:
                results.append(outcome)
        except (ConcurrentModificationError, InvalidTransitionError) as e:
            with lock:
                errors.append(e)

    threads = [threading.Thread(target=run, args=(call,)) for call in calls]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results, errors


def test_verify_and_reject_race_has_one_winner(engine, repo, make_draft, drive, operator, supervisor):
    draft = make_draft(operator)
    drive(draft.submission_id, SubmissionStatus.UNDER_VERIFICATION)
    engine.repo = GatedRepository(repo, parties=2)

    results, errors = _race([
        lambda: engine.complete_verification(draft.submission_id, supervisor),
        lambda: engine.reject(draft.submission_id, supervisor, comment="Not legible"),
    ])

    assert len(results) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], ConcurrentModificationError)

    final = repo.load(draft.submission_id)
    assert len(final.workflow_history) == 3
    assert final.status == results[0].to_status

    # Retrying the loser against fresh state fails deterministically, and
    # how it fails depends on which action won
    engine.repo = repo
    if final.status == SubmissionStatus.VERIFIED:
        # Reject from Verified is an Auditor edge
        with pytest.raises(UnauthorizedError):
            engine.reject(draft.submission_id, supervisor, comment="retry")
    else:
        with pytest.raises(InvalidTransitionError):
            engine.complete_verification(draft.submission_id, supervisor)


def test_reject_retried_after_completion_is_unauthorized(engine, make_draft, drive, operator, supervisor):
    draft = make_draft(operator)
    drive(draft.submission_id, SubmissionStatus.VERIFIED)

    with pytest.raises(UnauthorizedError):
        engine.reject(draft.submission_id, supervisor, comment="Not legible")


def test_completion_retried_after_rejection_is_invalid(engine, make_draft, drive, operator, supervisor):
    draft = make_draft(operator)
    drive(draft.submission_id, SubmissionStatus.UNDER_VERIFICATION)
    engine.reject(draft.submission_id, supervisor, comment="Not legible")

    with pytest.raises(InvalidTransitionError):
        engine.complete_verification(draft.submission_id, supervisor)


def test_identical_actions_race(engine, repo, make_draft, operator):
    draft = make_draft(operator)
    engine.repo = GatedRepository(repo, parties=2)

    results, errors = _race([
        lambda: engine.submit(draft.submission_id, operator),
        lambda: engine.submit(draft.submission_id, operator),
    ])

    assert len(results) == 1
    assert len(errors) == 1
    assert len(repo.load(draft.submission_id).workflow_history) == 1


def test_retry_on_conflict_reruns_until_success():
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConcurrentModificationError("conflict")
        return "done"

    assert retry_on_conflict(flaky, attempts=3, backoff_ms=1, sleep=lambda _: None) == "done"
    assert len(calls) == 3


def test_retry_on_conflict_gives_up():
    delays = []

    def always_conflict():
        raise ConcurrentModificationError("conflict")

    with pytest.raises(ConcurrentModificationError):
        retry_on_conflict(always_conflict, attempts=3, backoff_ms=100, sleep=delays.append)
    assert delays == [0.1, 0.2]


def test_retry_does_not_mask_other_errors():
    def invalid():
        raise InvalidTransitionError("nope")

    with pytest.raises(InvalidTransitionError):
        retry_on_conflict(invalid, attempts=5, sleep=lambda _: None)
