import os

from flask import Flask, Blueprint, request, current_app, send_from_directory

from config import Config, configure_logging
from envelope import api_response, register_error_handlers
from errors import NotFoundError, ValidationError
from init_db import init_database
from models import db, Job
from reconciler import submit_response, complete_application
from storage import storage_from_config


def create_app(config_object=None):
    app = Flask(__name__)
    app.config.from_object(Config)
    if config_object is not None:
        app.config.from_object(config_object)

    configure_logging(app.config.get('LOG_LEVEL'))
    db.init_app(app)
    app.extensions['video_storage'] = storage_from_config(app.config)
    register_error_handlers(app)
    app.register_blueprint(candidate_routes(), url_prefix='/candidate')
    register_media_route(app)
    return app


def register_media_route(app):
    """Serve locally stored takes at the relative URL kept on VideoResponse."""

    @app.route(app.config['UPLOAD_URL_PREFIX'] + '/<path:filename>')
    def uploaded_video(filename):
        folder = os.path.abspath(current_app.config['UPLOAD_FOLDER'])
        return send_from_directory(folder, filename)


def candidate_routes():
    bp = Blueprint('candidate', __name__)

    # Interview definition for a shareable link
    @bp.route('/job', methods=['GET'])
    def get_job():
        link_id = request.args.get('linkId')
        if not link_id:
            raise ValidationError('Link ID required')

        job = Job.query.filter_by(link_id=link_id, is_active=True).first()
        if job is None:
            raise NotFoundError('Job not found')
        return api_response(200, data=job.to_dict())

    # One selected take per call, multipart
    @bp.route('/submit', methods=['POST'])
    def submit():
        video = request.files.get('video')
        if video is None:
            raise ValidationError('Missing required fields')

        data = video.read()
        mime_type = video.mimetype or 'video/webm'
        form = request.form
        current_app.logger.info(
            "Receiving video for question %s from %s (%d bytes)",
            form.get('questionId'), form.get('candidateEmail'), len(data),
        )

        response = submit_response(
            job_id=form.get('jobId'),
            candidate_name=form.get('candidateName'),
            candidate_email=form.get('candidateEmail'),
            question_id=form.get('questionId'),
            data=data,
            duration=form.get('duration'),
            mime_type=mime_type,
            storage=current_app.extensions['video_storage'],
        )
        return api_response(201, data=response.to_dict(), message='Video uploaded successfully')

    @bp.route('/complete', methods=['POST'])
    def complete():
        payload = request.get_json(silent=True) or {}
        application = complete_application(payload.get('candidateEmail'), payload.get('jobId'))
        return api_response(200, data=application.to_dict(), message='Application completed')

    return bp


if __name__ == '__main__':
    app = create_app()
    init_database(app)
    app.run(debug=True, port=5001)
