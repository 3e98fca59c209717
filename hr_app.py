from functools import wraps

from flask import Flask, Blueprint, request, session, current_app

from candidate_app import register_media_route
from config import Config, configure_logging
from envelope import api_response, register_error_handlers
from errors import NotFoundError, ValidationError
from init_db import init_database
from models import db, Application, Job, Question


def create_app(config_object=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_object is not None:
        app.config.from_object(config_object)

    configure_logging(app.config.get('LOG_LEVEL'))
    db.init_app(app)
    register_error_handlers(app)
    app.register_blueprint(recruiter_routes())
    register_media_route(app)
    return app


# --- DECORATOR: LOGIN REQUIRED ---
def login_required(f):
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'is_logged_in' not in session:
            return api_response(401, error='Authentication required')
        return f(*args, **kwargs)
    return decorated_function


def _require_job_id():
    job_id = request.args.get('jobId')
    if not job_id:
        raise ValidationError('Job ID required')
    try:
        return int(job_id)
    except ValueError:
        raise ValidationError(f"Invalid jobId: {job_id!r}")


def _parse_questions(raw_questions):
    cfg = current_app.config
    low, high = cfg['MIN_TIME_LIMIT'], cfg['MAX_TIME_LIMIT']

    questions = []
    for i, item in enumerate(raw_questions or []):
        text = (item.get('questionText') or '').strip()
        if not text:
            continue
        try:
            time_limit = int(item.get('timeLimit', high))
        except (TypeError, ValueError):
            raise ValidationError(f"Question {i + 1}: invalid time limit")
        if not low <= time_limit <= high:
            raise ValidationError(f"Question {i + 1}: time limit must be between {low} and {high} seconds")
        questions.append(Question(order_index=len(questions), question_text=text, time_limit=time_limit))
    return questions


def recruiter_routes():
    bp = Blueprint('recruiter', __name__)

    @bp.route('/login', methods=['POST'])
    def login():
        payload = request.get_json(silent=True) or request.form
        user = payload.get('username')
        pwd = payload.get('password')

        if user == current_app.config['ADMIN_USERNAME'] and pwd == current_app.config['ADMIN_PASSWORD']:
            session['is_logged_in'] = True
            session['user'] = user
            return api_response(200, data={'username': user}, message='Login successful')
        return api_response(401, error='Invalid username or password')

    @bp.route('/logout', methods=['POST'])
    def logout():
        session.clear()
        return api_response(200, message='Logged out')

    @bp.route('/recruiter/jobs', methods=['GET'])
    @login_required
    def list_jobs():
        jobs = Job.query.order_by(Job.created_at.desc()).all()
        site = current_app.config['CANDIDATE_SITE_URL'].rstrip('/')
        data = []
        for job in jobs:
            d = job.to_dict()
            d['applicationCount'] = len(job.applications)
            d['interviewUrl'] = f"{site}/interview/{job.link_id}"
            data.append(d)
        return api_response(200, data=data)

    @bp.route('/recruiter/jobs', methods=['POST'])
    @login_required
    def create_job():
        payload = request.get_json(silent=True) or {}
        title = (payload.get('title') or '').strip()
        if not title:
            raise ValidationError('Title required')

        questions = _parse_questions(payload.get('questions'))
        if not questions:
            raise ValidationError('At least one question is required')

        job = Job(
            title=title,
            description=payload.get('description'),
            recruiter_name=session.get('user'),
            questions=questions,
        )
        db.session.add(job)
        db.session.commit()
        current_app.logger.info("Job %s created with %d questions", job.id, len(questions))
        return api_response(201, data=job.to_dict(), message='Job created successfully')

    # Applications for one job, newest first
    @bp.route('/recruiter/submissions', methods=['GET'])
    @login_required
    def list_submissions():
        job_id = _require_job_id()
        applications = (
            Application.query.filter_by(job_id=job_id)
            .order_by(Application.started_at.desc())
            .all()
        )
        return api_response(200, data=[a.to_dict(include_responses=True) for a in applications])

    @bp.route('/recruiter/submissions/<int:candidate_id>', methods=['GET'])
    @login_required
    def submission_detail(candidate_id):
        job_id = _require_job_id()
        application = Application.query.filter_by(candidate_id=candidate_id, job_id=job_id).first()
        if application is None:
            raise NotFoundError('Submission not found')

        data = application.to_dict(include_responses=True)
        data['job'] = application.job.to_dict()
        return api_response(200, data=data)

    return bp


if __name__ == '__main__':
    app = create_app()
    init_database(app)
    app.run(debug=True, port=5000)
