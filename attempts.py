import logging
from dataclasses import dataclass

from errors import ValidationError

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3


@dataclass(frozen=True)
class AttemptSnapshot:
    attempts_used: int
    max_attempts: int
    selected_index: object
    completed: bool

    @property
    def has_selection(self):
        return self.selected_index is not None

    @property
    def can_record(self):
        return not self.completed and self.attempts_used < self.max_attempts


class Playback:
    """A read-only view over one take. Revoked when the take is deleted."""

    def __init__(self, take):
        self._take = take
        self.revoked = False

    @property
    def data(self):
        if self.revoked:
            raise ValidationError("Playback handle was revoked")
        return self._take.data

    def revoke(self):
        self.revoked = True
        self._take = None


class AttemptTracker:
    """Takes recorded for a single question, and which one is selected."""

    def __init__(self, max_attempts=MAX_ATTEMPTS):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.takes = []
        self.selected_index = None
        self.completed = False
        self.viewing_index = None
        self._playbacks = {}
        self._subscribers = []

    def subscribe(self, callback):
        self._subscribers.append(callback)
        return lambda: self._subscribers.remove(callback)

    def snapshot(self):
        return AttemptSnapshot(
            attempts_used=len(self.takes),
            max_attempts=self.max_attempts,
            selected_index=self.selected_index,
            completed=self.completed,
        )

    @property
    def can_record(self):
        return self.snapshot().can_record

    def add_take(self, take):
        if self.completed:
            raise ValidationError("This question is already completed")
        if len(self.takes) >= self.max_attempts:
            raise ValidationError(f"Maximum {self.max_attempts} takes reached")
        self.takes.append(take)
        logger.debug("Take %d/%d recorded", len(self.takes), self.max_attempts)
        self._notify()
        return len(self.takes) - 1

    def select(self, index):
        self._check_index(index)
        self.selected_index = index
        self._notify()

    def delete(self, index):
        if self.completed:
            raise ValidationError("This question is already completed")
        self._check_index(index)

        handle = self._playbacks.pop(id(self.takes[index]), None)
        if handle is not None:
            handle.revoke()
        del self.takes[index]

        if self.selected_index == index:
            self.selected_index = None
        elif self.selected_index is not None and index < self.selected_index:
            self.selected_index -= 1

        if self.viewing_index == index:
            self.viewing_index = None
        elif self.viewing_index is not None and index < self.viewing_index:
            self.viewing_index -= 1
        self._notify()

    def confirmed_selection(self):
        if self.selected_index is None or self.selected_index >= len(self.takes):
            return None
        return self.takes[self.selected_index]

    def mark_completed(self):
        if self.confirmed_selection() is None:
            raise ValidationError("Please select a recording to continue")
        self.completed = True
        self.viewing_index = None
        self._notify()

    def playback(self, index):
        """Watch a take without consuming it; ``back_to_live`` returns to the camera."""
        self._check_index(index)
        take = self.takes[index]
        handle = self._playbacks.get(id(take))
        if handle is None:
            handle = self._playbacks[id(take)] = Playback(take)
        self.viewing_index = index
        return handle

    def back_to_live(self):
        self.viewing_index = None

    def discard(self):
        """Drop every take, e.g. once uploads are acknowledged."""
        for handle in self._playbacks.values():
            handle.revoke()
        self._playbacks.clear()
        self.takes = []
        self.viewing_index = None

    def _check_index(self, index):
        if not 0 <= index < len(self.takes):
            raise ValidationError(f"No take at index {index}")

    def _notify(self):
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            callback(snapshot)
