"""Sequential playback of prepared answer clips"""

import asyncio
from collections import deque
from typing import Callable, Deque, Optional
import structlog

from .metrics import audio_queue_depth, record_clip
from .models import AudioQueueItem, LogEntry

logger = structlog.get_logger(__name__)


class PlaybackScheduler:
    """Single-consumer FIFO of clips; at most one clip plays at a time.

    Completion of a clip immediately starts the next one, so queued answers
    play back to back without waiting for the response scheduler. The log
    entry of a clip is published when the clip starts, keeping the visible log
    in step with what is being heard.
    """

    def __init__(self, sink, on_log: Callable[[LogEntry], None]):
        self.sink = sink
        self.on_log = on_log
        self.queue: Deque[AudioQueueItem] = deque()
        self.is_playing = False
        self._current: Optional[asyncio.Task] = None

    @property
    def pending(self) -> int:
        return len(self.queue)

    def enqueue(self, item: AudioQueueItem):
        was_empty = not self.queue
        self.queue.append(item)
        audio_queue_depth.set(len(self.queue))
        # Queue went from empty to non-empty while idle
        if was_empty and not self.is_playing:
            self.play_next()

    def play_next(self):
        """Start the head clip; no-op while playing, empty, or without output"""
        if self.is_playing or not self.queue or not self.sink.available:
            return

        item = self.queue.popleft()
        audio_queue_depth.set(len(self.queue))
        self.is_playing = True
        self.on_log(item.log_entry)
        self._current = asyncio.create_task(self._play(item))

    async def _play(self, item: AudioQueueItem):
        try:
            await self.sink.play(item.buffer, item.sample_rate)
            record_clip("ok")
        except asyncio.CancelledError:
            # stop() already reset the flag; a newer clip may own it now
            raise
        except Exception as e:
            logger.error("Audio playback failed", log_id=item.log_entry.id, error=str(e))
            record_clip("error")

        self.is_playing = False
        self._current = None
        self.play_next()

    def clear(self) -> int:
        """Drop every queued clip; the one playing, if any, finishes"""
        dropped = len(self.queue)
        self.queue.clear()
        audio_queue_depth.set(0)
        if dropped:
            logger.info("Audio queue cleared", dropped=dropped)
        return dropped

    def stop(self):
        """Clear the queue and cut the current clip"""
        self.clear()
        if self._current is not None:
            self._current.cancel()
            self._current = None
            self.sink.stop()
        self.is_playing = False
