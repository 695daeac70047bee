"""Fakes for the OCR engine, Gemini client, audio sink and clock."""

import asyncio
from typing import List, Optional

import numpy as np
import pytest

from livehost.models import AIAnswer, BoundingBox, OCRLine, QuotaStatus


def make_line(text: str, y0: float, height: float = 20, x0: float = 10, confidence: float = 90) -> OCRLine:
    return OCRLine(
        text=text,
        bbox=BoundingBox(x0=x0, y0=y0, x1=x0 + 200, y1=y0 + height),
        confidence=confidence,
    )


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class FakeEngine:
    def __init__(self, lines: Optional[List[OCRLine]] = None):
        self.lines = lines or []
        self.ready = True
        self.calls = 0

    async def initialize(self):
        self.ready = True

    async def terminate(self):
        self.ready = False

    async def recognize(self, image) -> List[OCRLine]:
        self.calls += 1
        return list(self.lines)


class FakeClient:
    """Stands in for GeminiClient; replies are AIAnswer or exceptions, in order."""

    def __init__(self, replies=None, gate: Optional[asyncio.Event] = None):
        self.replies = list(replies or [])
        self.gate = gate
        self.answer_calls = []
        self.synth_calls = []
        self.quota_status = QuotaStatus.NORMAL
        self.last_error = None

    async def answer(self, image, batch, context) -> AIAnswer:
        self.answer_calls.append((image, list(batch), context))
        if self.gate is not None:
            await self.gate.wait()
        reply = self.replies.pop(0) if self.replies else AIAnswer.ignore()
        if isinstance(reply, Exception):
            raise reply
        return reply

    async def synthesize(self, text: str, voice: str) -> bytes:
        self.synth_calls.append((text, voice))
        return b"\x00\x40" * 240

    async def validate_connection(self, api_key=None):
        raise NotImplementedError


class FakeSink:
    """Records plays; each clip lasts until `finish()` unless auto-finishing."""

    def __init__(self, auto_finish: bool = True):
        self.available = True
        self.auto_finish = auto_finish
        self.played = []
        self.active = 0
        self.max_active = 0
        self.stopped = 0
        self._done: Optional[asyncio.Event] = None

    async def play(self, buffer: np.ndarray, sample_rate: int):
        self.played.append(buffer)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.auto_finish:
                await asyncio.sleep(0)
            else:
                self._done = asyncio.Event()
                await self._done.wait()
        finally:
            self.active -= 1

    def finish(self):
        if self._done is not None:
            self._done.set()

    def stop(self):
        self.stopped += 1


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sink():
    return FakeSink()
