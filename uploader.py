"""Sequential upload of the selected takes, followed by one completion call."""
import signal
import logging
import threading
from dataclasses import dataclass

import requests

from errors import InterviewError, UploadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadMetadata:
    job_id: object
    candidate_name: str
    candidate_email: str


class UnloadGuard:
    """Warns instead of exiting when the operator interrupts an upload.

    While active, the first Ctrl-C only logs a warning; a second one
    interrupts as usual. Signal handlers can only be installed from the main
    thread, so elsewhere the guard just tracks ``active``.
    """

    def __init__(self, message='Upload in progress. Press Ctrl-C again to abandon it.'):
        self.message = message
        self.active = False
        self._previous = None
        self._warned = False

    def _handler(self, signum, frame):
        if self._warned:
            raise KeyboardInterrupt
        self._warned = True
        logger.warning(self.message)

    def install(self):
        self.active = True
        self._warned = False
        if threading.current_thread() is threading.main_thread():
            self._previous = signal.signal(signal.SIGINT, self._handler)

    def remove(self):
        if self._previous is not None:
            signal.signal(signal.SIGINT, self._previous)
            self._previous = None
        self.active = False

    def __enter__(self):
        self.install()
        return self

    def __exit__(self, *exc):
        self.remove()


class UploadOrchestrator:
    """Uploads ``[(question, take), ...]`` one at a time, in order.

    Items the server already acknowledged are remembered, so calling
    ``submit`` again after a failure resumes at the first failed item. A
    question whose selected take changed in the meantime is uploaded again.
    """

    def __init__(self, api, on_progress=None, guard=None):
        self.api = api
        self.on_progress = on_progress
        self.guard = guard or UnloadGuard()
        self.completed = 0
        self.total = 0
        self.is_complete = False
        self.failed_position = None
        self._acknowledged = {}

    def _is_acknowledged(self, question, take):
        return self._acknowledged.get(question.order_index) is take

    def resume_index(self, items):
        for i, (question, take) in enumerate(items):
            if not self._is_acknowledged(question, take):
                return i
        return len(items)

    def _report(self):
        if self.on_progress is not None:
            self.on_progress(self.completed, self.total)

    def submit(self, items, metadata):
        items = list(items)
        self.total = len(items)
        self.is_complete = False
        self.failed_position = None
        start = self.resume_index(items)
        self.completed = start
        if start:
            logger.info("Resuming upload at item %d of %d", start + 1, self.total)
        self._report()

        with self.guard:
            for i in range(start, self.total):
                question, take = items[i]
                if self._is_acknowledged(question, take):
                    self.completed = i + 1
                    self._report()
                    continue
                try:
                    self.api.submit_take(
                        job_id=metadata.job_id,
                        candidate_name=metadata.candidate_name,
                        candidate_email=metadata.candidate_email,
                        question_id=question.id,
                        take=take,
                        filename=f"question-{i}.webm",
                    )
                except (InterviewError, requests.RequestException) as e:
                    self.failed_position = i + 1
                    logger.error("Upload of video %d/%d failed: %s", i + 1, self.total, e)
                    raise UploadError(
                        f"Failed to upload video {i + 1}",
                        position=i + 1, completed=self.completed, cause=e,
                    )
                self._acknowledged[question.order_index] = take
                self.completed = i + 1
                self._report()

            try:
                application = self.api.complete(metadata.candidate_email, metadata.job_id)
            except (InterviewError, requests.RequestException) as e:
                logger.error("Completion call failed: %s", e)
                raise UploadError(
                    "Failed to complete the application",
                    completed=self.completed, cause=e,
                )

        self.is_complete = True
        logger.info("All %d videos uploaded", self.total)
        return application
