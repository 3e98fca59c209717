import os

import pytest
from sqlalchemy import false
from sqlalchemy.exc import SQLAlchemyError

import reconciler
from errors import InternalError, NotFoundError, ValidationError
from models import db, Application, Candidate, VideoResponse
from storage import LocalVideoStorage


class RacingQuery:
    """Misses on the first lookup, as if another request inserted the row
    right after it."""

    def __init__(self, model):
        self.model = model
        self.missed = False

    def filter_by(self, **kwargs):
        query = db.session.query(self.model).filter_by(**kwargs)
        if not self.missed:
            self.missed = True
            return db.session.query(self.model).filter(false())
        return query


def test_get_or_create_recovers_from_unique_conflict(app, monkeypatch):
    with app.app_context():
        existing = Candidate(email='ada@example.com', name='Ada')
        db.session.add(existing)
        db.session.commit()
        existing_id = existing.id

        monkeypatch.setattr(Candidate, 'query', RacingQuery(Candidate))
        candidate, created = reconciler._get_or_create(
            Candidate, {'email': 'ada@example.com'}, {'name': 'Ada again'},
        )
        db.session.commit()

        assert not created
        assert candidate.id == existing_id
        assert db.session.query(Candidate).count() == 1


def test_application_natural_key(app, job):
    with app.app_context():
        candidate, _ = reconciler._get_or_create(Candidate, {'email': 'a@b.c'}, {'name': 'A'})
        first, created = reconciler._get_or_create(Application, {'candidate_id': candidate.id, 'job_id': job['id']})
        second, created_again = reconciler._get_or_create(Application, {'candidate_id': candidate.id, 'job_id': job['id']})
        db.session.commit()

        assert created and not created_again
        assert first.id == second.id


@pytest.mark.parametrize('field', ['job_id', 'question_id', 'duration'])
def test_submit_rejects_non_numeric_ids(app, job, field):
    kwargs = dict(
        job_id=job['id'], candidate_name='Ada', candidate_email='ada@example.com',
        question_id=job['question_ids'][0], data=b'x', duration='3', mime_type='video/webm',
        storage=None,
    )
    kwargs[field] = 'abc'
    with app.app_context():
        with pytest.raises(ValidationError):
            reconciler.submit_response(**kwargs)


def test_unknown_job_is_not_found(app, job):
    with app.app_context():
        with pytest.raises(NotFoundError):
            reconciler.submit_response(
                job_id=job['id'] + 1, candidate_name='Ada', candidate_email='ada@example.com',
                question_id=job['question_ids'][0], data=b'x', duration='3', mime_type='video/webm',
                storage=None,
            )


def submit(job, storage, data=b'video'):
    return reconciler.submit_response(
        job_id=job['id'], candidate_name='Ada', candidate_email='ada@example.com',
        question_id=job['question_ids'][0], data=data, duration='4', mime_type='video/webm',
        storage=storage,
    )


def test_failed_commit_removes_stored_video(app, job, tmp_path, monkeypatch):
    storage = LocalVideoStorage(str(tmp_path / 'media'))

    def broken_commit():
        raise SQLAlchemyError('database went away')

    with app.app_context():
        monkeypatch.setattr(db.session, 'commit', broken_commit)
        with pytest.raises(InternalError):
            submit(job, storage)
        monkeypatch.undo()

        assert os.listdir(tmp_path / 'media') == []
        assert VideoResponse.query.count() == 0


def test_resubmit_replaces_video(app, job, tmp_path):
    storage = LocalVideoStorage(str(tmp_path / 'media'))
    with app.app_context():
        first = submit(job, storage, data=b'first').file_path
        second = submit(job, storage, data=b'second')

        assert VideoResponse.query.count() == 1
        assert second.file_path != first
        assert os.listdir(tmp_path / 'media') == [os.path.basename(second.file_path)]
        assert second.file_size == len(b'second')
