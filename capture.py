"""Camera/microphone capture for interview takes.

The engine owns one device handle for as long as the candidate stays in the
recording flow. Every take starts with a fixed countdown, runs until the
candidate stops it or the question's time limit fires, and is handed out as
an in-memory :class:`Take`. All pending timers belong to the engine and are
cancelled together whenever it leaves the countdown/recording states.
"""
import os
import time
import logging
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone

import cv2

from errors import CapturePermissionError, ValidationError

logger = logging.getLogger(__name__)

COUNTDOWN_SECONDS = 3


@dataclass
class Take:
    data: bytes
    mime_type: str = 'video/webm'
    duration: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def size(self):
        return len(self.data)


class ThreadScheduler:
    """Runs callbacks on background timer threads."""

    def call_later(self, delay, fn):
        timer = threading.Timer(delay, fn)
        timer.daemon = True
        timer.start()
        return timer

    def now(self):
        return time.monotonic()


class MediaDevice:
    mime_type = 'video/webm'

    def open(self):
        raise NotImplementedError

    def start(self):
        raise NotImplementedError

    def stop(self):
        """Finish the current recording and return its bytes."""
        raise NotImplementedError

    def close(self):
        raise NotImplementedError


class OpenCVDevice(MediaDevice):
    """Webcam capture through OpenCV, encoded as VP8 WebM.

    OpenCV has no audio capture, so takes recorded with this device are
    video-only.
    """

    def __init__(self, index=0, fps=20.0):
        self.index = index
        self.fps = fps
        self._capture = None
        self._thread = None
        self._recording = threading.Event()
        self._path = None

    def open(self):
        capture = cv2.VideoCapture(self.index)
        if not capture.isOpened():
            capture.release()
            raise CapturePermissionError(f"Camera {self.index} is not available")
        self._capture = capture

    def start(self):
        width = int(self._capture.get(cv2.CAP_PROP_FRAME_WIDTH)) or 640
        height = int(self._capture.get(cv2.CAP_PROP_FRAME_HEIGHT)) or 480
        fd, self._path = tempfile.mkstemp(suffix='.webm')
        os.close(fd)
        writer = cv2.VideoWriter(self._path, cv2.VideoWriter_fourcc(*'VP80'), self.fps, (width, height))
        if not writer.isOpened():
            writer.release()
            os.remove(self._path)
            self._path = None
            raise CapturePermissionError("No VP8 encoder available for WebM recording")

        self._recording.set()
        self._thread = threading.Thread(target=self._record_loop, args=(writer,), daemon=True)
        self._thread.start()

    def _record_loop(self, writer):
        try:
            while self._recording.is_set():
                ok, frame = self._capture.read()
                if ok:
                    writer.write(frame)
        finally:
            writer.release()

    def stop(self):
        self._recording.clear()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        try:
            with open(self._path, 'rb') as f:
                return f.read()
        finally:
            os.remove(self._path)
            self._path = None

    def close(self):
        if self._capture is not None:
            self._capture.release()
            self._capture = None


class CaptureEngine:
    IDLE = 'idle'
    READY = 'ready'
    COUNTDOWN = 'countdown'
    RECORDING = 'recording'
    FAILED = 'failed'
    RELEASED = 'released'

    def __init__(self, device, scheduler=None, countdown_seconds=COUNTDOWN_SECONDS,
                 on_countdown=None, on_tick=None, on_take=None, on_error=None):
        self.device = device
        self.scheduler = scheduler or ThreadScheduler()
        self.countdown_seconds = countdown_seconds
        self.on_countdown = on_countdown
        self.on_tick = on_tick
        self.on_take = on_take
        self.on_error = on_error

        self.state = self.IDLE
        self.error = None
        self.countdown = None
        self.time_left = None
        self.time_limit = None

        self._lock = threading.RLock()
        self._timers = []
        self._generation = 0
        self._started_at = None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, *exc):
        self.release()

    @property
    def busy(self):
        return self.state in (self.COUNTDOWN, self.RECORDING)

    def acquire(self):
        with self._lock:
            if self.state == self.FAILED:
                raise CapturePermissionError(self.error)
            if self.state in (self.READY, self.COUNTDOWN, self.RECORDING):
                return self
            try:
                self.device.open()
            except CapturePermissionError as e:
                self.state = self.FAILED
                self.error = e.message
                raise
            except OSError as e:
                self.state = self.FAILED
                self.error = str(e) or CapturePermissionError.default_message
                raise CapturePermissionError(self.error)
            self.state = self.READY
            logger.debug("Capture device acquired")
            return self

    def start_countdown(self, time_limit):
        """Begin the pre-roll; recording starts when it reaches zero."""
        with self._lock:
            if self.state != self.READY:
                raise ValidationError(f"Cannot start recording while {self.state}")
            self.state = self.COUNTDOWN
            self.time_limit = time_limit
            self.countdown = self.countdown_seconds
            self._emit(self.on_countdown, self.countdown)
            self._schedule(1, self._countdown_tick)

    def _countdown_tick(self, generation):
        with self._lock:
            if generation != self._generation or self.state != self.COUNTDOWN:
                return
            self.countdown -= 1
            if self.countdown > 0:
                self._emit(self.on_countdown, self.countdown)
                self._schedule(1, self._countdown_tick)
                return
            self.countdown = None
            self._timers.clear()
            self.record()

    def record(self, time_limit=None):
        with self._lock:
            if self.state not in (self.READY, self.COUNTDOWN):
                raise ValidationError(f"Cannot record while {self.state}")
            if time_limit is not None:
                self.time_limit = time_limit
            if not self.time_limit:
                raise ValidationError("A time limit is required")

            try:
                self.device.start()
            except (CapturePermissionError, OSError) as e:
                self._fail(e)
                raise
            self.state = self.RECORDING
            self.time_left = self.time_limit
            self._started_at = self.scheduler.now()
            self._schedule(1, self._tick)
            self._schedule(self.time_limit, self._auto_stop)
            logger.debug("Recording started (%ss limit)", self.time_limit)

    def _tick(self, generation):
        with self._lock:
            if generation != self._generation or self.state != self.RECORDING:
                return
            self.time_left = max(self.time_left - 1, 0)
            self._emit(self.on_tick, self.time_left)
            if self.time_left > 0:
                self._schedule(1, self._tick)

    def _auto_stop(self, generation):
        with self._lock:
            if generation != self._generation or self.state != self.RECORDING:
                return
            logger.debug("Time limit reached")
            self.stop()

    def stop(self):
        """Finalize the current take. Returns None when nothing is recording.

        Stopping during the countdown cancels it without producing a take.
        """
        with self._lock:
            if self.state == self.COUNTDOWN:
                self._cancel_timers()
                self.countdown = None
                self.state = self.READY
                return None
            if self.state != self.RECORDING:
                return None
            self._cancel_timers()
            data = self.device.stop()
            elapsed = self.scheduler.now() - self._started_at
            take = Take(
                data=data,
                mime_type=self.device.mime_type,
                duration=min(int(round(elapsed)), self.time_limit),
            )
            self.state = self.READY
            self.time_left = None
            self._emit(self.on_take, take)
            return take

    def release(self):
        """Stop every timer and the device. An unfinished take is discarded."""
        with self._lock:
            if self.state in (self.FAILED, self.RELEASED):
                return
            if self.state == self.IDLE:
                self.state = self.RELEASED
                return
            self._cancel_timers()
            if self.state == self.RECORDING:
                self.device.stop()
                logger.info("Discarded unfinished take on release")
            self.device.close()
            self.state = self.RELEASED
            self.countdown = None
            self.time_left = None
            logger.debug("Capture device released")

    def _fail(self, error):
        self._cancel_timers()
        self.device.close()
        self.state = self.FAILED
        self.error = getattr(error, 'message', None) or str(error)
        self.countdown = None
        logger.error("Recording could not start: %s", self.error)
        self._emit(self.on_error, error)

    def _schedule(self, delay, fn):
        generation = self._generation
        self._timers.append(self.scheduler.call_later(delay, lambda: fn(generation)))

    def _cancel_timers(self):
        self._generation += 1
        for timer in self._timers:
            timer.cancel()
        self._timers.clear()

    def _emit(self, callback, value):
        if callback is not None:
            callback(value)
