import uuid
from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() + "Z" if value else None


def new_link_id():
    return uuid.uuid4().hex


# --- MODEL DATABASE ---
class Job(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    link_id = db.Column(db.String(64), unique=True, nullable=False, default=new_link_id)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    recruiter_name = db.Column(db.String(100))
    recruiter_email = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=utcnow)

    questions = db.relationship(
        'Question', backref='job', lazy=True, cascade="all, delete-orphan",
        order_by='Question.order_index',
    )
    applications = db.relationship('Application', backref='job', lazy=True, cascade="all, delete-orphan")

    def to_dict(self, include_questions=True):
        d = {
            'id': self.id,
            'title': self.title,
            'description': self.description,
            'linkId': self.link_id,
            'isActive': self.is_active,
            'recruiterName': self.recruiter_name,
            'createdAt': _iso(self.created_at),
        }
        if include_questions:
            d['questions'] = [q.to_dict() for q in self.questions]
        return d


class Question(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    job_id = db.Column(db.Integer, db.ForeignKey('job.id'), nullable=False)
    order_index = db.Column(db.Integer, nullable=False, default=0)
    question_text = db.Column(db.Text, nullable=False)
    time_limit = db.Column(db.Integer, nullable=False, default=30)  # seconds

    def to_dict(self):
        return {
            'id': self.id,
            'jobId': self.job_id,
            'orderIndex': self.order_index,
            'questionText': self.question_text,
            'timeLimit': self.time_limit,
        }


class Candidate(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(200), unique=True, nullable=False)
    name = db.Column(db.String(100), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    applications = db.relationship('Application', backref='candidate', lazy=True)

    def to_dict(self):
        return {'id': self.id, 'email': self.email, 'name': self.name}


class Application(db.Model):
    __table_args__ = (
        db.UniqueConstraint('candidate_id', 'job_id', name='uq_application_candidate_job'),
    )

    id = db.Column(db.Integer, primary_key=True)
    candidate_id = db.Column(db.Integer, db.ForeignKey('candidate.id'), nullable=False)
    job_id = db.Column(db.Integer, db.ForeignKey('job.id'), nullable=False)
    started_at = db.Column(db.DateTime, default=utcnow)
    completed_at = db.Column(db.DateTime)  # set once by the completion call

    video_responses = db.relationship(
        'VideoResponse', backref='application', lazy=True, cascade="all, delete-orphan",
    )

    def to_dict(self, include_responses=False):
        d = {
            'id': self.id,
            'candidateId': self.candidate_id,
            'jobId': self.job_id,
            'startedAt': _iso(self.started_at),
            'completedAt': _iso(self.completed_at),
        }
        if include_responses:
            d['candidate'] = self.candidate.to_dict()
            d['videoResponses'] = [
                r.to_dict(include_question=True)
                for r in sorted(self.video_responses, key=lambda r: r.question.order_index)
            ]
        return d


class VideoResponse(db.Model):
    __table_args__ = (
        db.UniqueConstraint('application_id', 'question_id', name='uq_video_response_application_question'),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(db.Integer, db.ForeignKey('application.id'), nullable=False)
    question_id = db.Column(db.Integer, db.ForeignKey('question.id'), nullable=False)
    file_path = db.Column(db.String(500), nullable=False)  # relative URL or CDN URL
    duration = db.Column(db.Integer)
    file_size = db.Column(db.Integer)
    mime_type = db.Column(db.String(100))
    recorded_at = db.Column(db.DateTime, default=utcnow)

    question = db.relationship('Question', lazy=True)

    def to_dict(self, include_question=False):
        d = {
            'id': self.id,
            'applicationId': self.application_id,
            'questionId': self.question_id,
            'filePath': self.file_path,
            'duration': self.duration,
            'fileSize': self.file_size,
            'mimeType': self.mime_type,
            'recordedAt': _iso(self.recorded_at),
        }
        if include_question:
            d['question'] = self.question.to_dict()
        return d
