from prometheus_client import Counter, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Live host pipeline metrics
ocr_messages_total = Counter('livehost_ocr_messages_total', 'Chat messages emitted by OCR')
response_cycles_total = Counter('livehost_response_cycles_total', 'Response cycles by outcome', ['outcome'])
clips_played_total = Counter('livehost_clips_played_total', 'Audio clips played', ['status'])
pending_chats = Gauge('livehost_pending_chats', 'Chats waiting for a response')
audio_queue_depth = Gauge('livehost_audio_queue_depth', 'Prepared clips waiting to play')
inference_latency_ms = Gauge('livehost_inference_latency_ms', 'Latency of the last answer call in ms')


def record_cycle(outcome: str):
    """Record a response cycle outcome"""
    response_cycles_total.labels(outcome=outcome).inc()


def record_clip(status: str):
    clips_played_total.labels(status=status).inc()


async def metrics_endpoint():
    """Prometheus metrics endpoint"""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
