from flask import jsonify, current_app
from werkzeug.exceptions import HTTPException

from errors import InterviewError


def api_response(status_code, data=None, error=None, message=None):
    body = {"status": 200 <= status_code < 300, "statusCode": status_code}
    if data is not None:
        body["data"] = data
    if error is not None:
        body["error"] = error
    if message is not None:
        body["message"] = message
    return jsonify(body), status_code


def register_error_handlers(app):
    """API routes always answer with an envelope, never an HTML error page."""

    @app.errorhandler(InterviewError)
    def handle_interview_error(e):
        if e.status_code >= 500:
            current_app.logger.error("Request failed: %s", e.message)
        return api_response(e.status_code, error=e.message)

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return api_response(e.code, error=e.description)

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        current_app.logger.exception("Unhandled error")
        return api_response(500, error=str(e) or "Internal server error")
