"""Response cycles: batch pending chats, ask the model, prepare speech"""

import asyncio
import time
import uuid
from collections import deque
from typing import Callable, Deque, Iterable, List, Optional, Set
import structlog

from .audio import decode_pcm16
from .config import settings
from .inference import GeminiClient, QuotaExhaustedError
from .metrics import inference_latency_ms, pending_chats, record_cycle
from .models import (
    AIAnswer, AnswerContext, AudioQueueItem, ChatMessage, Intent,
    LogEntry, ResponseMode, SessionState
)
from .playback import PlaybackScheduler
from .voice_manager import VoiceManager

logger = structlog.get_logger(__name__)


class ChatIntakeQueue:
    """FIFO of chat messages waiting for a response cycle"""

    def __init__(self):
        self._items: Deque[ChatMessage] = deque()

    def extend(self, messages: Iterable[ChatMessage]):
        self._items.extend(messages)
        pending_chats.set(len(self._items))

    def take(self, limit: int) -> List[ChatMessage]:
        """Remove and return up to `limit` oldest messages"""
        batch = []
        while self._items and len(batch) < limit:
            batch.append(self._items.popleft())
        pending_chats.set(len(self._items))
        return batch

    def snapshot(self) -> List[ChatMessage]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)


def build_log_entry(batch: List[ChatMessage], answer: AIAnswer) -> LogEntry:
    """Log entry describing who was answered and with what"""
    if len(batch) > 1:
        user = f"{len(batch)} Users"
    elif batch:
        user = batch[0].author
    else:
        user = "System"

    if batch:
        question = " | ".join(m.body for m in batch)[:100] + "..."
    else:
        question = "Visual/Gift"

    return LogEntry(
        id=uuid.uuid4().hex,
        timestamp=time.time(),
        user=user,
        question=question,
        answer=answer.text_answer,
        intent=answer.intent
    )


class ResponseScheduler:
    """Decides when to respond and turns one batch into one queued clip.

    Cycles are started by a fixed-period tick and by a short follow-up while
    chats remain queued. The busy flag is taken before the first await, so
    overlapping ticks see it and back off. Stopping bumps the epoch; a cycle
    that finishes under an older epoch drops its result.
    """

    def __init__(
        self,
        state: SessionState,
        intake: ChatIntakeQueue,
        playback: PlaybackScheduler,
        client: GeminiClient,
        voice_manager: VoiceManager,
        snapshot: Optional[Callable[[], Optional[bytes]]] = None,
        on_product_detected: Optional[Callable[[str], None]] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.state = state
        self.intake = intake
        self.playback = playback
        self.client = client
        self.voice_manager = voice_manager
        self.snapshot = snapshot
        self.on_product_detected = on_product_detected
        self.clock = clock

        self.batch_size = settings.batch_size
        self.max_audio_backlog = settings.max_audio_backlog
        self.busy = False
        self.total_answered = 0
        self._epoch = 0
        self._last_proactive: Optional[float] = None
        self._driver: Optional[asyncio.Task] = None
        self._followup: Optional[asyncio.TimerHandle] = None
        self._cycles: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._driver is not None and not self._driver.done()

    def start(self):
        if self.running:
            return
        self._driver = asyncio.create_task(self._tick_loop())
        logger.info("Response scheduler started", interval=settings.cycle_interval_seconds)

    def stop(self):
        """Stop the drivers and release the busy flag; in-flight results are dropped"""
        if self._driver:
            self._driver.cancel()
            self._driver = None
        if self._followup:
            self._followup.cancel()
            self._followup = None
        self._epoch += 1
        self.busy = False

    async def _tick_loop(self):
        while True:
            self._spawn_cycle()
            await asyncio.sleep(settings.cycle_interval_seconds)

    def _spawn_cycle(self):
        if self._followup is not None:
            self._followup.cancel()
            self._followup = None
        task = asyncio.create_task(self.run_cycle())
        self._cycles.add(task)
        task.add_done_callback(self._cycles.discard)

    def _schedule_followup(self):
        if not self.running or self._followup is not None:
            return
        loop = asyncio.get_running_loop()
        self._followup = loop.call_later(settings.backlog_retry_seconds, self._spawn_cycle)

    def _proactive_allowed(self) -> bool:
        if not settings.proactive_enabled:
            return False
        if self.playback.pending or self.playback.is_playing:
            return False
        if self._last_proactive is None:
            return True
        return self.clock() - self._last_proactive >= settings.proactive_interval_seconds

    async def run_cycle(self) -> str:
        """Run one response cycle and return its outcome label"""
        if self.playback.pending > self.max_audio_backlog:
            record_cycle("backpressure")
            return "backpressure"
        if self.busy:
            return "busy"

        mode = ResponseMode.REACTIVE if len(self.intake) else ResponseMode.PROACTIVE
        if mode == ResponseMode.PROACTIVE and not self._proactive_allowed():
            return "idle"

        # Taken before any await
        self.busy = True
        epoch = self._epoch
        batch = self.intake.take(self.batch_size)
        if mode == ResponseMode.PROACTIVE:
            self._last_proactive = self.clock()

        try:
            outcome = await self._respond(batch, mode, epoch)
        except QuotaExhaustedError as e:
            logger.warning("Response cycle skipped, quota exhausted", error=str(e))
            outcome = "quota"
        except Exception as e:
            logger.error("Response cycle failed", mode=mode.value, batch=len(batch), error=str(e))
            outcome = "error"

        if epoch == self._epoch:
            self.busy = False
            if len(self.intake):
                self._schedule_followup()

        record_cycle(outcome)
        return outcome

    async def _respond(self, batch: List[ChatMessage], mode: ResponseMode, epoch: int) -> str:
        profile = self.state.profile
        image = None
        if profile.requires_vision and self.snapshot:
            image = self.snapshot()

        context = AnswerContext(
            profile=profile,
            products=self.state.products,
            mode=mode,
            last_answer=self.state.last_answer
        )

        start = time.monotonic()
        answer = await self.client.answer(image, batch, context)
        latency = (time.monotonic() - start) * 1000
        if epoch != self._epoch:
            return "discarded"

        self.state.latency_ms = latency
        inference_latency_ms.set(latency)

        if answer.intent == Intent.IGNORE or not answer.text_answer:
            return "ignored"
        if answer.text_answer == self.state.last_answer:
            logger.debug("Duplicate answer suppressed", answer=answer.text_answer)
            return "duplicate"

        entry = build_log_entry(batch, answer)
        if answer.detected_product_id and self.on_product_detected:
            self.on_product_detected(answer.detected_product_id)

        pcm = await self.client.synthesize(
            self.voice_manager.styled_text(answer.text_answer, profile.personality),
            self.voice_manager.voice_for(profile.gender)
        )
        if epoch != self._epoch:
            return "discarded"

        current = self.state.profile
        if (current.gender, current.personality) != (profile.gender, profile.personality):
            logger.info("Voice changed during generation, clip dropped", log_id=entry.id)
            return "discarded"

        self.playback.enqueue(AudioQueueItem(
            buffer=decode_pcm16(pcm),
            sample_rate=settings.tts_sample_rate,
            log_entry=entry
        ))
        self.playback.play_next()
        self.total_answered += 1

        logger.info("Answer queued",
                    mode=mode.value,
                    intent=answer.intent.value,
                    batch=len(batch),
                    latency_ms=round(latency))
        return "answered"
