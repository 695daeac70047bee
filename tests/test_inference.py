import asyncio
from types import SimpleNamespace

import pytest

from livehost.inference import (
    GeminiClient, InferenceError, QuotaExhaustedError, is_quota_error, parse_answer
)
from livehost.models import (
    AnswerContext, ChatMessage, Confidence, HostProfile, Intent, QuotaStatus, ResponseMode
)
from livehost.prompt_manager import PromptManager
from livehost.voice_manager import VoiceManager


class FakeModels:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class StubbedClient(GeminiClient):
    def __init__(self, outcomes, api_keys=("key-a",)):
        self.sleeps = []

        async def sleep(seconds):
            self.sleeps.append(seconds)

        super().__init__(PromptManager(VoiceManager()), api_keys=list(api_keys), sleep=sleep)
        self.models = FakeModels(outcomes)
        self.made = []

    def _make_client(self, api_key):
        self.made.append(api_key)
        return SimpleNamespace(aio=SimpleNamespace(models=self.models))


def text_response(text):
    return SimpleNamespace(text=text)


def audio_response(data):
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data))
    return SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])


def context():
    return AnswerContext(profile=HostProfile(), mode=ResponseMode.REACTIVE)


def batch():
    return [ChatMessage(id="ocr_1", author="Budi", body="Harga berapa kak?", observed_at=0)]


def test_parse_answer_json():
    answer = parse_answer('```json\n{"intent": "chat_response", "text_answer": "Seratus ribu kak", '
                          '"detected_product_id": 2, "confidence": "HIGH"}\n```')
    assert answer.intent == Intent.CHAT_RESPONSE
    assert answer.text_answer == "Seratus ribu kak"
    assert answer.detected_product_id == "2"
    assert answer.confidence == Confidence.HIGH


def test_parse_answer_prose_is_spoken():
    answer = parse_answer("Halo semuanya")
    assert answer.intent == Intent.CHAT_RESPONSE
    assert answer.text_answer == "Halo semuanya"
    assert answer.confidence == Confidence.MEDIUM


def test_parse_answer_degrades_to_ignore():
    assert parse_answer("").intent == Intent.IGNORE
    assert parse_answer('{"intent": "dance", "text_answer": "x"}').intent == Intent.IGNORE
    assert parse_answer('{"intent": "chat_response", "text_answer": "  "}').intent == Intent.IGNORE
    assert parse_answer("42").intent == Intent.IGNORE


def test_parse_answer_takes_first_list_item():
    answer = parse_answer('[{"intent": "gift_thanks", "text_answer": "Makasih mawarnya!"}]')
    assert answer.intent == Intent.GIFT_THANKS


def test_is_quota_error():
    assert is_quota_error(Exception("429 RESOURCE_EXHAUSTED"))
    assert is_quota_error(SimpleNamespace(code=429))
    assert not is_quota_error(Exception("500 internal"))


def test_answer_retries_on_rate_limit():
    client = StubbedClient([
        Exception("429 RESOURCE_EXHAUSTED"),
        Exception("Quota exceeded"),
        text_response('{"intent": "chat_response", "text_answer": "Halo kak", "confidence": "high"}'),
    ])
    answer = asyncio.run(client.answer(b"\xff\xd8jpeg", batch(), context()))

    assert answer.text_answer == "Halo kak"
    assert client.sleeps == [2.0, 5.0]
    assert client.quota_status == QuotaStatus.NORMAL
    assert len(client.models.calls) == 3
    assert client.models.calls[0]["config"].response_mime_type == "application/json"


def test_answer_quota_exhausted_after_retries():
    client = StubbedClient([Exception("429 RESOURCE_EXHAUSTED")] * 4)
    with pytest.raises(QuotaExhaustedError):
        asyncio.run(client.answer(None, batch(), context()))
    assert client.sleeps == [2.0, 5.0, 10.0]
    assert client.quota_status == QuotaStatus.EXHAUSTED


def test_other_errors_fail_without_retry():
    client = StubbedClient([Exception("500 internal")])
    with pytest.raises(InferenceError):
        asyncio.run(client.answer(None, batch(), context()))
    assert client.sleeps == []
    assert "500 internal" in client.last_error


def test_no_keys_configured():
    client = StubbedClient([], api_keys=())
    with pytest.raises(InferenceError):
        asyncio.run(client.answer(None, batch(), context()))


def test_keys_rotate_round_robin():
    client = StubbedClient([text_response("satu"), text_response("dua")], api_keys=("key-a", "key-b"))
    asyncio.run(client.answer(None, batch(), context()))
    asyncio.run(client.answer(None, batch(), context()))
    assert client.made == ["key-a", "key-b"]


def test_synthesize_returns_pcm_with_voice():
    client = StubbedClient([audio_response(b"\x01\x00\x02\x00")])
    pcm = asyncio.run(client.synthesize("[Speak fast] Halo kak", "Kore"))

    assert pcm == b"\x01\x00\x02\x00"
    call = client.models.calls[0]
    assert call["contents"] == "[Speak fast] Halo kak"
    assert call["config"].speech_config.voice_config.prebuilt_voice_config.voice_name == "Kore"


def test_synthesize_without_audio_fails():
    client = StubbedClient([SimpleNamespace(candidates=[])])
    with pytest.raises(InferenceError):
        asyncio.run(client.synthesize("Halo", "Kore"))


def test_validate_connection_reports_quota():
    client = StubbedClient([Exception("RESOURCE_EXHAUSTED")])
    result = asyncio.run(client.validate_connection())
    assert not result.success
    assert result.quota_exhausted
    assert client.quota_status == QuotaStatus.EXHAUSTED


def test_validate_connection_success():
    client = StubbedClient([text_response("pong")])
    result = asyncio.run(client.validate_connection())
    assert result.success
    assert result.message == "Connected"
