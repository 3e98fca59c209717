import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from models import db

logger = logging.getLogger(__name__)

# Databases created before the natural-key constraints existed need these
# added by hand; create_all() never alters an existing table.
UNIQUE_INDEXES = [
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_candidate_email ON candidate (email)",
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_application_candidate_job ON application (candidate_id, job_id)",
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_video_response_application_question "
    "ON video_response (application_id, question_id)",
]


def init_database(app):
    with app.app_context():
        db.create_all()
        try:
            for sql in UNIQUE_INDEXES:
                db.session.execute(text(sql))
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Failed to add unique indexes")
            raise
        logger.info("Database ready")


if __name__ == '__main__':
    from candidate_app import create_app
    init_database(create_app())
