"""Gemini client for the answer and speech synthesis capabilities"""

import asyncio
import json
import re
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional
import structlog
from google import genai
from google.genai import types
from pydantic import ValidationError

from .config import settings
from .models import (
    AIAnswer, AnswerContext, ChatMessage, Confidence, Intent, QuotaStatus, ValidationResult
)
from .prompt_manager import PromptManager

logger = structlog.get_logger(__name__)

CODE_FENCE = re.compile(r"```(?:json)?\s*")
QUOTA_MARKERS = ("resource_exhausted", "quota", "limit")


class InferenceError(Exception):
    """Answer or synthesis request failed"""


class QuotaExhaustedError(InferenceError):
    """Rate limit persisted through every retry"""


def is_quota_error(error: Exception) -> bool:
    code = getattr(error, "code", None) or getattr(error, "status_code", None)
    if code == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in QUOTA_MARKERS)


def parse_answer(raw: str) -> AIAnswer:
    """Parse the model reply; malformed replies degrade, never raise"""
    text = CODE_FENCE.sub("", raw or "").strip()
    if not text:
        return AIAnswer.ignore()

    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        # Plain prose instead of JSON is still speakable
        return AIAnswer(intent=Intent.CHAT_RESPONSE, text_answer=text, confidence=Confidence.MEDIUM)

    if isinstance(payload, list) and payload and isinstance(payload[0], dict):
        payload = payload[0]
    if not isinstance(payload, dict):
        return AIAnswer.ignore()

    try:
        answer = AIAnswer.model_validate(payload)
    except ValidationError as e:
        logger.warning("Unrecognized answer payload", error=str(e))
        return AIAnswer.ignore()

    if answer.intent == Intent.IGNORE or not answer.text_answer.strip():
        return AIAnswer.ignore()
    return answer


class GeminiClient:
    """Gemini access with key rotation, quota-aware retry and status tracking"""

    def __init__(
        self,
        prompt_manager: PromptManager,
        api_keys: Optional[List[str]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.prompt_manager = prompt_manager
        self.api_keys = api_keys if api_keys is not None else settings.api_keys()
        self.sleep = sleep
        self.max_retries = settings.max_retries
        self.backoff = settings.retry_backoff_seconds
        self.quota_status = QuotaStatus.NORMAL
        self.last_error: Optional[str] = None
        self._clients: Dict[str, Any] = {}
        self._key_index = 0

    def _make_client(self, api_key: str):
        return genai.Client(api_key=api_key)

    def _next_client(self):
        if not self.api_keys:
            raise InferenceError("No API keys configured")
        key = self.api_keys[self._key_index % len(self.api_keys)]
        self._key_index += 1
        if key not in self._clients:
            self._clients[key] = self._make_client(key)
        return self._clients[key]

    async def _execute(self, operation: Callable[[Any], Awaitable[Any]], context: str):
        """Run `operation` with a rotated client, backing off on rate limits"""
        attempt = 0
        while True:
            try:
                return await operation(self._next_client())
            except InferenceError:
                raise
            except Exception as e:
                quota = is_quota_error(e)
                self.last_error = f"{context}: {e}"

                if quota and attempt < self.max_retries:
                    self.quota_status = QuotaStatus.WARNING
                    wait_time = self.backoff[min(attempt, len(self.backoff) - 1)]
                    logger.warning("Rate limit hit, retrying",
                                   context=context,
                                   attempt=attempt + 1,
                                   wait_time=wait_time)
                    await self.sleep(wait_time)
                    attempt += 1
                    continue

                if quota:
                    self.quota_status = QuotaStatus.EXHAUSTED
                    logger.error("Quota exhausted", context=context, error=str(e))
                    raise QuotaExhaustedError(str(e)) from e

                logger.error("Gemini request failed", context=context, error=str(e))
                raise InferenceError(str(e)) from e

    async def answer(
        self,
        image: Optional[bytes],
        batch: List[ChatMessage],
        context: AnswerContext
    ) -> AIAnswer:
        """Ask the model for the next thing the host should say"""
        system_instruction = self.prompt_manager.system_instruction(context)
        parts = [types.Part.from_text(text=self.prompt_manager.prompt(batch, context))]
        if image:
            parts.append(types.Part.from_bytes(data=image, mime_type="image/jpeg"))

        async def operation(client):
            return await client.aio.models.generate_content(
                model=settings.answer_model,
                contents=parts,
                config=types.GenerateContentConfig(
                    system_instruction=system_instruction,
                    response_mime_type="application/json"
                )
            )

        response = await self._execute(operation, "answer")
        if self.quota_status == QuotaStatus.WARNING:
            self.quota_status = QuotaStatus.NORMAL
        return parse_answer(response.text or "")

    async def synthesize(self, text: str, voice: str) -> bytes:
        """Return raw 16-bit mono PCM for `text` spoken in `voice`"""

        async def operation(client):
            return await client.aio.models.generate_content(
                model=settings.tts_model,
                contents=text,
                config=types.GenerateContentConfig(
                    response_modalities=["AUDIO"],
                    speech_config=types.SpeechConfig(
                        voice_config=types.VoiceConfig(
                            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice)
                        )
                    )
                )
            )

        logger.debug("Generating speech", voice=voice, text_length=len(text))
        response = await self._execute(operation, "synthesize")
        audio = extract_audio(response)
        if not audio:
            raise InferenceError("No audio generated")
        return audio

    async def validate_connection(self, api_key: Optional[str] = None) -> ValidationResult:
        """Probe the answer model with a trivial request"""
        start = time.monotonic()
        try:
            client = self._make_client(api_key) if api_key else self._next_client()
            await client.aio.models.generate_content(model=settings.answer_model, contents="ping")
        except Exception as e:
            logger.warning("Connection validation failed", error=str(e))
            if is_quota_error(e):
                self.quota_status = QuotaStatus.EXHAUSTED
                return ValidationResult(success=False, message="Quota Exhausted", quota_exhausted=True)
            return ValidationResult(success=False, message=f"Connection Failed: {e}")

        return ValidationResult(
            success=True,
            latency_ms=(time.monotonic() - start) * 1000,
            model=settings.answer_model,
            message="Connected"
        )


def extract_audio(response) -> Optional[bytes]:
    """First inline audio payload of a generate_content response"""
    for candidate in response.candidates or []:
        content = candidate.content
        for part in (content.parts if content else None) or []:
            if part.inline_data and part.inline_data.data:
                return part.inline_data.data
    return None
