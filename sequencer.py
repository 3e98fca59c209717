"""Candidate-side interview flow as an explicit state machine.

    intro -> setup -> recording -> uploading -> complete
      |                  ^   ^          |
      +--(no setup)------+   +----------+  (upload failed)

Every state change goes through ``_transition``; anything not listed in
``TRANSITIONS`` raises ``IllegalTransition``.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum

from attempts import AttemptTracker
from config import Config
from errors import IllegalTransition, ValidationError

logger = logging.getLogger(__name__)


class InterviewState(Enum):
    INTRO = 'intro'
    SETUP = 'setup'
    RECORDING = 'recording'
    UPLOADING = 'uploading'
    COMPLETE = 'complete'


TRANSITIONS = {
    (InterviewState.INTRO, 'identify'): InterviewState.SETUP,
    (InterviewState.INTRO, 'identify_skip_setup'): InterviewState.RECORDING,
    (InterviewState.SETUP, 'setup_done'): InterviewState.RECORDING,
    (InterviewState.RECORDING, 'begin_upload'): InterviewState.UPLOADING,
    (InterviewState.UPLOADING, 'upload_succeeded'): InterviewState.COMPLETE,
    (InterviewState.UPLOADING, 'upload_failed'): InterviewState.RECORDING,
}


@dataclass
class SessionConfig:
    """Per-session options, passed explicitly instead of via shared storage."""
    max_attempts: int = field(default_factory=lambda: Config.MAX_ATTEMPTS)
    countdown_seconds: int = field(default_factory=lambda: Config.COUNTDOWN_SECONDS)
    require_setup: bool = True
    practice: bool = False


@dataclass(frozen=True)
class InterviewQuestion:
    id: object
    order_index: int
    text: str
    time_limit: int

    @classmethod
    def from_dict(cls, d):
        return cls(
            id=d['id'],
            order_index=d.get('orderIndex', 0),
            text=d['questionText'],
            time_limit=int(d['timeLimit']),
        )


@dataclass(frozen=True)
class QuestionProgress:
    question_number: int
    question_text: str
    attempts_used: int
    max_attempts: int
    is_completed: bool
    has_selected_video: bool
    is_current: bool
    can_navigate: bool


@dataclass
class CandidateIdentity:
    name: str = ''
    email: str = ''


@dataclass
class QuestionSequencer:
    questions: list
    config: SessionConfig = field(default_factory=SessionConfig)

    def __post_init__(self):
        if not self.questions:
            raise ValidationError("An interview needs at least one question")
        self.questions = sorted(self.questions, key=lambda q: q.order_index)
        self.state = InterviewState.INTRO
        self.candidate = CandidateIdentity()
        self.current_index = 0
        self.viewing_index = 0
        self.last_error = None
        self.capture_index = None
        self.trackers = [AttemptTracker(self.config.max_attempts) for _ in self.questions]
        self._finalized = {}
        self._subscribers = []
        for tracker in self.trackers:
            tracker.subscribe(lambda _snapshot: self._notify())

    # --- observers ---
    def subscribe(self, callback):
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    def _notify(self):
        for callback in list(self._subscribers):
            callback(self)

    def _transition(self, event):
        target = TRANSITIONS.get((self.state, event))
        if target is None:
            raise IllegalTransition(f"Cannot {event} while {self.state.value}")
        logger.debug("Interview %s -> %s", self.state.value, target.value)
        self.state = target
        self._notify()

    def _require(self, state):
        if self.state != state:
            raise IllegalTransition(f"Interview is {self.state.value}, not {state.value}")

    def _require_idle(self):
        if self.capture_index is not None:
            raise ValidationError('Finish the current recording first')

    # --- intro / setup ---
    def start(self, name, email):
        self._require(InterviewState.INTRO)
        name = (name or '').strip()
        email = (email or '').strip()
        if not name or not email:
            self.last_error = 'Please enter your name and email'
            raise ValidationError(self.last_error)
        self.candidate = CandidateIdentity(name=name, email=email)
        self.last_error = None
        self._transition('identify' if self.config.require_setup else 'identify_skip_setup')

    def finish_setup(self):
        self._transition('setup_done')

    # --- recording ---
    @property
    def current_question(self):
        return self.questions[self.viewing_index]

    @property
    def tracker(self):
        return self.trackers[self.viewing_index]

    @property
    def is_last_question(self):
        return self.viewing_index == len(self.questions) - 1

    def begin_capture(self):
        """Reserve the question on screen for the take about to be recorded.

        Until the take arrives (or ``end_capture`` is called) the candidate
        cannot move, select, delete or confirm.
        """
        self._require(InterviewState.RECORDING)
        self._require_idle()
        if not self.tracker.can_record:
            raise ValidationError(f"Maximum {self.tracker.max_attempts} takes reached")
        self.capture_index = self.viewing_index
        return self.current_question

    def end_capture(self):
        self.capture_index = None

    def record_take(self, take):
        self._require(InterviewState.RECORDING)
        index = self.viewing_index if self.capture_index is None else self.capture_index
        self.capture_index = None
        return self.trackers[index].add_take(take)

    def select(self, take_index):
        self._require(InterviewState.RECORDING)
        self._require_idle()
        self.tracker.select(take_index)

    def delete(self, take_index):
        self._require(InterviewState.RECORDING)
        self._require_idle()
        self.tracker.delete(take_index)

    def navigate(self, index):
        """Revisit the current or an already answered question."""
        self._require(InterviewState.RECORDING)
        self._require_idle()
        if index < 0:
            raise ValidationError(f"No question at index {index}")
        if index > self.current_index:
            raise IllegalTransition("Cannot skip ahead to an unanswered question")
        self.viewing_index = index
        self._notify()

    def confirm(self):
        """Lock in the selected take for the question on screen.

        Confirming the last question moves the interview to uploading.
        """
        self._require(InterviewState.RECORDING)
        self._require_idle()
        tracker = self.tracker
        take = tracker.confirmed_selection()
        if take is None:
            self.last_error = 'Please select a recording to continue'
            raise ValidationError(self.last_error)

        tracker.mark_completed()
        self._finalized[self.current_question.order_index] = take
        self.last_error = None

        if self.viewing_index < self.current_index:
            self.viewing_index = self.current_index
            self._notify()
            return take

        if self.is_last_question:
            self.begin_upload()
        else:
            self.current_index += 1
            self.viewing_index = self.current_index
            self._notify()
        return take

    @property
    def all_confirmed(self):
        return all(q.order_index in self._finalized for q in self.questions)

    def finalized_takes(self):
        """``[(question, take), ...]`` in question order."""
        return [(q, self._finalized[q.order_index]) for q in self.questions if q.order_index in self._finalized]

    # --- upload ---
    def begin_upload(self):
        if self.state == InterviewState.RECORDING and not self.all_confirmed:
            raise IllegalTransition("Every question needs a selected take before uploading")
        self._transition('begin_upload')
        return self.finalized_takes()

    def upload_succeeded(self):
        self._transition('upload_succeeded')
        self.last_error = None
        # takes only live until they are durable on the server
        self._finalized.clear()
        for tracker in self.trackers:
            tracker.discard()

    def upload_failed(self, error):
        self.last_error = str(error)
        self._transition('upload_failed')

    def progress(self):
        items = []
        for i, (question, tracker) in enumerate(zip(self.questions, self.trackers)):
            snapshot = tracker.snapshot()
            items.append(QuestionProgress(
                question_number=i + 1,
                question_text=question.text,
                attempts_used=snapshot.attempts_used,
                max_attempts=snapshot.max_attempts,
                is_completed=snapshot.completed,
                has_selected_video=snapshot.has_selection,
                is_current=i == self.viewing_index,
                can_navigate=i <= self.current_index,
            ))
        return items
