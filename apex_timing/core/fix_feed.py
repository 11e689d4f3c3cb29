"""
Background fix delivery with lock-free snapshots for the render path.

A worker thread pulls fixes from the position source and hands them to
the SessionRecorder in arrival order. After each fix a recorder
snapshot is published to a bounded queue; the render loop drains it
with get_snapshot() and never waits on fix processing.
"""

import logging
import queue
import threading
import time
from typing import Iterable, Optional

from apex_timing.core.session_recorder import RecorderSnapshot, SessionRecorder
from apex_timing.data.models import Fix

logger = logging.getLogger('apexTimer.feed')


class FixFeed:
    """
    Worker thread connecting a position source to a recorder.

    Key features:
    - Bounded queue (depth 2) of recorder snapshots, oldest dropped
    - get_snapshot() never blocks
    - A source that stops yielding simply stalls the worker; there is
      no timeout policy
    """

    def __init__(self, source: Iterable[Fix], recorder: SessionRecorder,
                 queue_depth: int = 2):
        """
        Args:
            source: Position source yielding fixes in timestamp order
            recorder: Recorder that owns the live session
            queue_depth: Maximum queued snapshots (default 2 for double-buffering)
        """
        self.source = source
        self.recorder = recorder
        self.queue_depth = queue_depth
        self.data_queue = queue.Queue(maxsize=queue_depth)
        self.current_snapshot: Optional[RecorderSnapshot] = None
        self.running = False
        self.thread: Optional[threading.Thread] = None

        # Performance monitoring
        self.fix_count = 0
        self.fixes_refused = 0
        self.last_perf_time = time.time()
        self.update_hz = 0.0
        self._frame_count = 0

        self._finished = threading.Event()

    def start(self):
        """Start the fix reading thread."""
        if self.running:
            return

        self.running = True
        self._finished.clear()
        self.thread = threading.Thread(target=self._worker_loop, daemon=True)
        self.thread.start()
        logger.info("Fix feed started")

    def stop(self, timeout: float = 5.0):
        """
        Stop the worker.

        A worker blocked inside a stalled source cannot be interrupted;
        it exits after the next fix arrives (the thread is a daemon).
        """
        self.running = False
        if self.thread:
            self.thread.join(timeout=timeout)
        logger.info("Fix feed stopped")

    def wait_until_finished(self, timeout: Optional[float] = None) -> bool:
        """Block until the source is exhausted. Returns False on timeout."""
        return self._finished.wait(timeout)

    def _worker_loop(self):
        try:
            for fix in self.source:
                if not self.running:
                    break
                outcome = self.recorder.on_fix(fix)
                self.fix_count += 1
                if not outcome.accepted:
                    self.fixes_refused += 1
                self._publish_snapshot(self.recorder.snapshot())
        except Exception as e:
            logger.warning("Fix feed: Position source failed: %s", e)
        finally:
            self.running = False
            self._finished.set()

    def _publish_snapshot(self, snapshot: RecorderSnapshot):
        """Queue a snapshot, dropping the oldest if the queue is full."""
        try:
            self.data_queue.put_nowait(snapshot)
        except queue.Full:
            try:
                self.data_queue.get_nowait()
                self.data_queue.put_nowait(snapshot)
            except (queue.Empty, queue.Full):
                pass

        self._frame_count += 1
        current_time = time.time()
        elapsed = current_time - self.last_perf_time
        if elapsed >= 1.0:
            self.update_hz = self._frame_count / elapsed
            self._frame_count = 0
            self.last_perf_time = current_time

    def get_snapshot(self) -> Optional[RecorderSnapshot]:
        """
        Get the latest recorder snapshot (lock-free for render path).

        Returns:
            RecorderSnapshot or None if no fix has been processed yet
        """
        try:
            while True:
                self.current_snapshot = self.data_queue.get_nowait()
        except queue.Empty:
            pass

        return self.current_snapshot

    def get_update_rate(self) -> float:
        """Fix processing rate in Hz."""
        return self.update_hz
