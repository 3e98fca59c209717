"""Candidate side of the video interview.

``InterviewApi`` talks to the candidate API, ``CandidateSession`` drives one
candidate through capture, take selection and upload. Run as a script to
take an interview from a terminal with the local webcam::

    python interview_client.py http://127.0.0.1:5001 <link-id>
"""
import sys
import logging
import argparse
from dataclasses import dataclass, field

import requests

from capture import CaptureEngine, OpenCVDevice
from config import Config, configure_logging
from errors import (
    CapturePermissionError, IllegalTransition, InterviewError, InternalError, UploadError, ValidationError,
    error_for_status,
)
from sequencer import InterviewQuestion, InterviewState, QuestionSequencer, SessionConfig
from uploader import UploadMetadata, UploadOrchestrator

logger = logging.getLogger(__name__)


class InterviewApi:
    def __init__(self, base_url, session=None, timeout=120):
        self.base_url = base_url.rstrip('/')
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method, path, **kwargs):
        resp = self.session.request(method, f"{self.base_url}{path}", timeout=self.timeout, **kwargs)
        try:
            body = resp.json()
        except ValueError:
            raise InternalError(f"Unexpected response from server ({resp.status_code})")

        if not body.get('status'):
            status_code = body.get('statusCode', resp.status_code)
            raise error_for_status(status_code, body.get('error') or body.get('message') or 'Request failed')
        return body.get('data')

    def fetch_job(self, link_id):
        if not link_id:
            raise ValidationError('Link ID required')
        return self._request('GET', '/candidate/job', params={'linkId': link_id})

    def submit_take(self, job_id, candidate_name, candidate_email, question_id, take, filename='question.webm'):
        return self._request(
            'POST', '/candidate/submit',
            data={
                'jobId': str(job_id),
                'candidateName': candidate_name,
                'candidateEmail': candidate_email,
                'questionId': str(question_id),
                'duration': str(take.duration),
            },
            files={'video': (filename, take.data, take.mime_type)},
        )

    def complete(self, candidate_email, job_id):
        return self._request(
            'POST', '/candidate/complete',
            json={'candidateEmail': candidate_email, 'jobId': job_id},
        )


@dataclass
class DemoConfig:
    """Questions for a practice run that never touches the server."""
    questions: list = field(default_factory=list)
    title: str = 'Practice interview'
    max_attempts: int = field(default_factory=lambda: Config.MAX_ATTEMPTS)

    def __post_init__(self):
        if not self.questions:
            raise ValidationError('At least one question is required')
        for i, q in enumerate(self.questions):
            limit = int(q.get('timeLimit', Config.MAX_TIME_LIMIT))
            if not Config.MIN_TIME_LIMIT <= limit <= Config.MAX_TIME_LIMIT:
                raise ValidationError(
                    f"Question {i + 1}: time limit must be between "
                    f"{Config.MIN_TIME_LIMIT} and {Config.MAX_TIME_LIMIT} seconds"
                )

    def to_job(self):
        return {
            'id': None,
            'title': self.title,
            'questions': [
                {
                    'id': f"demo-{i}",
                    'orderIndex': i,
                    'questionText': q['questionText'],
                    'timeLimit': int(q.get('timeLimit', Config.MAX_TIME_LIMIT)),
                }
                for i, q in enumerate(self.questions)
            ],
        }


class CandidateSession:
    def __init__(self, job, api=None, device=None, scheduler=None, config=None, on_progress=None):
        self.job = job
        self.config = config or SessionConfig()
        if api is None and not self.config.practice:
            raise ValueError("An InterviewApi is required outside practice mode")

        self.api = api
        questions = [InterviewQuestion.from_dict(q) for q in job['questions']]
        self.sequencer = QuestionSequencer(questions, self.config)
        self.engine = CaptureEngine(
            device or OpenCVDevice(), scheduler,
            countdown_seconds=self.config.countdown_seconds,
            on_take=self._on_take,
            on_error=self._on_capture_error,
        )
        self.orchestrator = UploadOrchestrator(api, on_progress=on_progress)

    @classmethod
    def from_link(cls, api, link_id, **kwargs):
        return cls(api.fetch_job(link_id), api=api, **kwargs)

    @classmethod
    def practice(cls, demo_config, device=None, scheduler=None):
        config = SessionConfig(max_attempts=demo_config.max_attempts, require_setup=False, practice=True)
        return cls(demo_config.to_job(), device=device, scheduler=scheduler, config=config)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    @property
    def state(self):
        return self.sequencer.state

    def start(self, name, email):
        self.sequencer.start(name, email)
        # setup owns the preview handle; recording acquires its own
        self.engine.acquire()

    def finish_setup(self):
        self.engine.release()
        self.sequencer.finish_setup()
        self.engine.acquire()

    def record(self):
        if self.sequencer.state != InterviewState.RECORDING:
            raise ValidationError('Interview is not recording')
        question = self.sequencer.begin_capture()
        try:
            self.engine.acquire()
            self.engine.start_countdown(question.time_limit)
        except InterviewError:
            self.sequencer.end_capture()
            raise

    def stop(self):
        take = self.engine.stop()
        if take is None:
            # cancelled during the countdown
            self.sequencer.end_capture()
        return take

    def _on_take(self, take):
        self.sequencer.record_take(take)

    def _on_capture_error(self, error):
        self.sequencer.end_capture()
        self.sequencer.last_error = str(error)

    def confirm(self):
        if self.engine.busy:
            raise ValidationError('Finish the current recording first')
        self.sequencer.confirm()
        if self.sequencer.state == InterviewState.UPLOADING:
            self.engine.release()
            return self.upload()
        return None

    def upload(self):
        items = self.sequencer.finalized_takes()
        if self.config.practice:
            self.sequencer.upload_succeeded()
            return None

        metadata = UploadMetadata(
            job_id=self.job['id'],
            candidate_name=self.sequencer.candidate.name,
            candidate_email=self.sequencer.candidate.email,
        )
        try:
            application = self.orchestrator.submit(items, metadata)
        except UploadError as e:
            self.sequencer.upload_failed(e)
            raise
        self.sequencer.upload_succeeded()
        return application

    def retry_upload(self):
        self.sequencer.begin_upload()
        return self.upload()

    def close(self):
        self.engine.release()
        self.sequencer.end_capture()


# --- terminal runner ---
def _prompt_takes(session):
    seq = session.sequencer
    session.engine.on_countdown = lambda n: print(f"  {n}...")
    session.engine.on_tick = lambda left: print("  Time is up, press Enter") if left == 0 else None

    while True:
        q = seq.current_question
        tracker = seq.tracker
        print(f"\nQuestion {seq.viewing_index + 1} of {len(seq.questions)}: {q.text} ({q.time_limit}s)")
        for i, take in enumerate(tracker.takes):
            mark = '*' if i == tracker.selected_index else ' '
            print(f"  [{mark}] take {i + 1}: {take.duration}s, {take.size} bytes")
        choice = input("[r]ecord, [s N] select, [d N] delete, [g N] go to question, [c]onfirm: ").strip().split()
        if not choice:
            continue
        try:
            if choice[0] == 'r':
                session.record()
                input("  Recording... press Enter to stop\n")
                session.stop()
            elif choice[0] == 's':
                seq.select(int(choice[1]) - 1)
            elif choice[0] == 'd':
                seq.delete(int(choice[1]) - 1)
            elif choice[0] == 'g':
                seq.navigate(int(choice[1]) - 1)
            elif choice[0] == 'c':
                return session.confirm()
        except (IndexError, ValueError):
            print("  Invalid command")
        except (ValidationError, IllegalTransition) as e:
            print(f"  {e.message}")


def main(argv=None):
    parser = argparse.ArgumentParser(description='Take a video interview from the terminal')
    parser.add_argument('base_url')
    parser.add_argument('link_id')
    parser.add_argument('--camera', type=int, default=0)
    args = parser.parse_args(argv)
    configure_logging()

    api = InterviewApi(args.base_url)
    def progress(done, total):
        print(f"Uploading video {done} of {total}")

    try:
        session = CandidateSession.from_link(
            api, args.link_id, device=OpenCVDevice(args.camera), on_progress=progress,
        )
    except InterviewError as e:
        print(f"Job not found or link expired: {e.message}")
        return 1

    with session:
        print(session.job['title'])
        while session.state == InterviewState.INTRO:
            try:
                session.start(input("Your name: "), input("Your email: "))
            except ValidationError as e:
                print(e.message)
            except CapturePermissionError as e:
                print(f"Camera unavailable: {e.message}")
                return 1
        if session.state == InterviewState.SETUP:
            input("Camera ready. Press Enter to begin")
            session.finish_setup()

        while session.state != InterviewState.COMPLETE:
            try:
                if session.state == InterviewState.RECORDING and session.sequencer.all_confirmed:
                    session.retry_upload()
                else:
                    _prompt_takes(session)
            except UploadError as e:
                print(f"{e.message}. Your recordings are kept; press Enter to retry.")
                input()

    print("Interview complete. Thank you!")
    return 0


if __name__ == '__main__':
    sys.exit(main())
