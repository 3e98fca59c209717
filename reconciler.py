"""Server-side reconciliation of candidate submissions.

Links a candidate (natural key: email) to an application (natural key:
candidate + job), stores each selected take and records one VideoResponse
per (application, question). Natural-key rows are created inside a savepoint;
a unique-constraint conflict means another request won the race and the
existing row is re-fetched.
"""
import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from errors import InternalError, NotFoundError, ValidationError
from models import db, Application, Candidate, Job, Question, VideoResponse, utcnow

logger = logging.getLogger(__name__)


def _get_or_create(model, lookup, defaults=None):
    instance = model.query.filter_by(**lookup).first()
    if instance:
        return instance, False

    params = dict(lookup, **(defaults or {}))
    try:
        with db.session.begin_nested():
            instance = model(**params)
            db.session.add(instance)
        return instance, True
    except IntegrityError:
        instance = model.query.filter_by(**lookup).first()
        if instance is None:
            raise
        return instance, False


def _parse_int(value, field):
    if value is None or str(value).strip() == '':
        raise ValidationError(f"Missing required field: {field}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {field}: {value!r}")


def _require_text(value, field):
    if value is None or not str(value).strip():
        raise ValidationError(f"Missing required field: {field}")
    return str(value).strip()


def _discard_media(storage, file_path):
    try:
        storage.delete(file_path)
    except OSError as e:
        logger.warning("Could not remove video %s: %s", file_path, e)


def submit_response(job_id, candidate_name, candidate_email, question_id,
                    data, duration, mime_type, storage):
    """Store one selected take and return its VideoResponse."""
    job_id = _parse_int(job_id, 'jobId')
    question_id = _parse_int(question_id, 'questionId')
    candidate_name = _require_text(candidate_name, 'candidateName')
    candidate_email = _require_text(candidate_email, 'candidateEmail').lower()
    if not data:
        raise ValidationError("Missing required field: video")
    duration = _parse_int(duration, 'duration') if duration not in (None, '') else None

    job = db.session.get(Job, job_id)
    if job is None:
        raise NotFoundError('Job not found')
    question = db.session.get(Question, question_id)
    if question is None or question.job_id != job.id:
        raise NotFoundError('Question not found')

    file_path = None
    try:
        candidate, created = _get_or_create(
            Candidate, {'email': candidate_email}, {'name': candidate_name},
        )
        if created:
            logger.info("Created candidate %s", candidate_email)

        application, created = _get_or_create(
            Application, {'candidate_id': candidate.id, 'job_id': job.id},
        )
        if created:
            logger.info("Started application %s for job %s", application.id, job.id)

        file_path = storage.save(data, candidate.id, question.id, mime_type)

        response, created = _get_or_create(
            VideoResponse,
            {'application_id': application.id, 'question_id': question.id},
            {'file_path': file_path},
        )
        previous_path = None if created else response.file_path

        response.file_path = file_path
        response.duration = duration
        response.file_size = len(data)
        response.mime_type = mime_type
        response.recorded_at = utcnow()
        db.session.commit()
    except (SQLAlchemyError, OSError) as e:
        db.session.rollback()
        logger.exception("Failed to store response for question %s", question_id)
        if file_path is not None:
            _discard_media(storage, file_path)
        raise InternalError(str(e) or 'Failed to upload video')

    if previous_path and previous_path != file_path:
        _discard_media(storage, previous_path)
    return response


def complete_application(candidate_email, job_id):
    """Stamp the application finished. A second call leaves the first stamp."""
    candidate_email = _require_text(candidate_email, 'candidateEmail').lower()
    job_id = _parse_int(job_id, 'jobId')

    candidate = Candidate.query.filter_by(email=candidate_email).first()
    if candidate is None:
        raise NotFoundError('Candidate not found')

    application = Application.query.filter_by(candidate_id=candidate.id, job_id=job_id).first()
    if application is None:
        raise NotFoundError('Application not found')

    if application.completed_at is None:
        application.completed_at = utcnow()
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            raise InternalError(str(e) or 'Failed to complete application')
        logger.info("Application %s completed", application.id)
    return application
