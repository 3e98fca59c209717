import signal

import pytest
import requests

from capture import Take
from errors import InternalError, UploadError
from sequencer import InterviewQuestion
from uploader import UnloadGuard, UploadMetadata, UploadOrchestrator

METADATA = UploadMetadata(job_id=7, candidate_name='Ada', candidate_email='ada@example.com')


class FakeApi:
    def __init__(self, fail_at=(), fail_complete=False):
        self.fail_at = set(fail_at)
        self.fail_complete = fail_complete
        self.submitted = []
        self.completions = []

    def submit_take(self, job_id, candidate_name, candidate_email, question_id, take, filename):
        self.submitted.append(question_id)
        if len(self.submitted) in self.fail_at:
            raise requests.ConnectionError('connection reset')
        return {'questionId': question_id}

    def complete(self, candidate_email, job_id):
        self.completions.append((candidate_email, job_id))
        if self.fail_complete:
            raise InternalError('database is locked')
        return {'completedAt': '2026-01-01T00:00:00Z'}


def items(n):
    return [
        (InterviewQuestion(id=100 + i, order_index=i, text=f"Q{i}", time_limit=10), Take(data=bytes([i])))
        for i in range(n)
    ]


def test_uploads_in_order_then_completes_once():
    api = FakeApi()
    progress = []
    orchestrator = UploadOrchestrator(api, on_progress=lambda done, total: progress.append((done, total)))

    result = orchestrator.submit(items(3), METADATA)

    assert api.submitted == [100, 101, 102]
    assert api.completions == [('ada@example.com', 7)]
    assert progress == [(0, 3), (1, 3), (2, 3), (3, 3)]
    assert orchestrator.is_complete
    assert result == {'completedAt': '2026-01-01T00:00:00Z'}


def test_failure_halts_without_completion():
    api = FakeApi(fail_at={2})
    orchestrator = UploadOrchestrator(api)

    with pytest.raises(UploadError) as exc:
        orchestrator.submit(items(4), METADATA)

    assert exc.value.position == 2
    assert exc.value.completed == 1
    assert 'video 2' in exc.value.message
    assert api.submitted == [100, 101]
    assert api.completions == []
    assert not orchestrator.is_complete


def test_retry_resumes_at_failed_item():
    api = FakeApi(fail_at={2})
    orchestrator = UploadOrchestrator(api)
    batch = items(4)
    with pytest.raises(UploadError):
        orchestrator.submit(batch, METADATA)

    assert orchestrator.resume_index(batch) == 1
    orchestrator.submit(batch, METADATA)

    assert api.submitted == [100, 101, 101, 102, 103]
    assert len(api.completions) == 1


def test_changed_selection_is_uploaded_again():
    api = FakeApi(fail_at={3})
    orchestrator = UploadOrchestrator(api)
    batch = items(3)
    with pytest.raises(UploadError):
        orchestrator.submit(batch, METADATA)

    question, _ = batch[0]
    batch[0] = (question, Take(data=b'new'))
    orchestrator.submit(batch, METADATA)

    assert api.submitted == [100, 101, 102, 100, 102]


def test_completion_failure_retries_only_completion():
    api = FakeApi(fail_complete=True)
    orchestrator = UploadOrchestrator(api)
    batch = items(2)
    with pytest.raises(UploadError) as exc:
        orchestrator.submit(batch, METADATA)
    assert exc.value.position is None
    assert exc.value.completed == 2

    api.fail_complete = False
    orchestrator.submit(batch, METADATA)
    assert api.submitted == [100, 101]
    assert len(api.completions) == 2


def test_guard_active_only_while_uploading():
    states = []
    guard = UnloadGuard()

    class WatchingApi(FakeApi):
        def submit_take(self, **kwargs):
            states.append(guard.active)
            return super().submit_take(**kwargs)

    orchestrator = UploadOrchestrator(WatchingApi(), guard=guard)
    orchestrator.submit(items(2), METADATA)

    assert states == [True, True]
    assert not guard.active


def test_guard_restores_signal_handler():
    before = signal.getsignal(signal.SIGINT)
    with UnloadGuard() as guard:
        assert signal.getsignal(signal.SIGINT) == guard._handler
        guard._handler(signal.SIGINT, None)
        with pytest.raises(KeyboardInterrupt):
            guard._handler(signal.SIGINT, None)
    assert signal.getsignal(signal.SIGINT) == before


def test_guard_removed_after_failure():
    guard = UnloadGuard()
    orchestrator = UploadOrchestrator(FakeApi(fail_at={1}), guard=guard)
    with pytest.raises(UploadError):
        orchestrator.submit(items(2), METADATA)
    assert not guard.active
