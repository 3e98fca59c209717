import io
from urllib.parse import urlsplit

import pytest
import requests

import candidate_app
import hr_app
from capture import CaptureEngine
from errors import CapturePermissionError
from init_db import init_database
from models import db, Job, Question


def make_config(tmp_path):
    class TestConfig:
        TESTING = True
        SECRET_KEY = 'test'
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'interview.db'}"
        SQLALCHEMY_ENGINE_OPTIONS = {}
        STORAGE_BACKEND = 'local'
        UPLOAD_FOLDER = str(tmp_path / 'videos')
        ADMIN_USERNAME = 'admin'
        ADMIN_PASSWORD = 'secret'
        LOG_LEVEL = 'WARNING'
    return TestConfig


@pytest.fixture
def upload_folder(tmp_path):
    return tmp_path / 'videos'


@pytest.fixture
def app(tmp_path):
    app = candidate_app.create_app(make_config(tmp_path))
    init_database(app)
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def hr(tmp_path, app):
    """Recruiter app on the same database file as ``app``."""
    return hr_app.create_app(make_config(tmp_path))


@pytest.fixture
def job(app):
    """Two questions, 10s and 15s."""
    with app.app_context():
        job = Job(title='Backend Engineer', description='Python and SQL', link_id='link-123')
        job.questions = [
            Question(order_index=0, question_text='Tell us about yourself', time_limit=10),
            Question(order_index=1, question_text='Describe a hard bug you fixed', time_limit=15),
        ]
        db.session.add(job)
        db.session.commit()
        return {
            'id': job.id,
            'link_id': job.link_id,
            'question_ids': [q.id for q in job.questions],
        }


class ManualScheduler:
    """Virtual clock; timers fire only when ``advance`` passes them."""

    class Handle:
        def __init__(self, when, fn):
            self.when = when
            self.fn = fn
            self.cancelled = False
            self.fired = False

        def cancel(self):
            self.cancelled = True

    def __init__(self):
        self.time = 0.0
        self.handles = []

    def now(self):
        return self.time

    def call_later(self, delay, fn):
        handle = self.Handle(self.time + delay, fn)
        self.handles.append(handle)
        return handle

    def advance(self, seconds):
        target = self.time + seconds
        while True:
            due = [h for h in self.handles if not h.cancelled and not h.fired and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.when)
            self.time = handle.when
            handle.fired = True
            handle.fn()
        self.time = target


class FakeDevice:
    mime_type = 'video/webm'

    def __init__(self, deny=False, fail_start=False):
        self.deny = deny
        self.fail_start = fail_start
        self.is_open = False
        self.recording = False
        self.opens = 0
        self.takes = 0

    def open(self):
        if self.deny:
            raise CapturePermissionError('Permission denied')
        self.opens += 1
        self.is_open = True

    def start(self):
        assert self.is_open
        if self.fail_start:
            raise CapturePermissionError('Encoder unavailable')
        self.recording = True

    def stop(self):
        assert self.recording
        self.recording = False
        self.takes += 1
        return f"take-{self.takes}".encode()

    def close(self):
        self.is_open = False


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def device():
    return FakeDevice()


@pytest.fixture
def engine(device, scheduler):
    return CaptureEngine(device, scheduler)


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError('No JSON body')
        return self._body


class FlaskSession:
    """``requests.Session`` stand-in that routes into a Flask test client.

    ``fail_on`` maps a path to the 1-based call numbers that should fail
    with a connection error instead of reaching the app.
    """

    def __init__(self, client, fail_on=None):
        self.client = client
        self.fail_on = fail_on or {}
        self.calls = []

    def request(self, method, url, params=None, data=None, files=None, json=None, timeout=None):
        path = urlsplit(url).path
        self.calls.append(path)
        if self.calls.count(path) in self.fail_on.get(path, ()):
            raise requests.ConnectionError('connection reset')

        kwargs = {'method': method, 'query_string': params}
        if files:
            form = dict(data or {})
            for key, (filename, content, mime_type) in files.items():
                form[key] = (io.BytesIO(content), filename, mime_type)
            kwargs['data'] = form
            kwargs['content_type'] = 'multipart/form-data'
        elif json is not None:
            kwargs['json'] = json
        elif data is not None:
            kwargs['data'] = data

        resp = self.client.open(path, **kwargs)
        return FakeResponse(resp.status_code, resp.get_json(silent=True))

    def count(self, path):
        return self.calls.count(path)
