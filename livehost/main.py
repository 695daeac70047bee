"""
Live Host Service
Reads live-stream chat from the screen and answers it with a synthetic voice
"""

from typing import Dict, List, Optional
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import structlog

from .config import settings
from .metrics import metrics_endpoint
from .models import (
    ChatMessage, HostProfile, HostUpdate, LogEntry, ProductData, Region,
    RunRequest, StatusResponse, ValidationResult
)
from .pipeline import LiveHostPipeline

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    logger.info("🎙️ Starting Live Host Service")

    app.state.pipeline = LiveHostPipeline()
    await app.state.pipeline.initialize()

    yield

    logger.info("🛑 Shutting down Live Host Service")
    await app.state.pipeline.shutdown()

app = FastAPI(
    title="Live Host Service",
    description="Screen-read chat answered by an AI voice host",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    pipeline = app.state.pipeline
    return {
        "status": "healthy",
        "service": "livehost",
        "ocr_ready": pipeline.engine.ready,
        "audio_available": pipeline.sink.available
    }


@app.get("/status", response_model=StatusResponse)
async def get_status():
    return app.state.pipeline.status()


@app.post("/capture/start", response_model=StatusResponse)
async def start_capture():
    """Begin screen capture and chat reading"""
    try:
        await app.state.pipeline.start_capture()
    except Exception as e:
        logger.error("Failed to start capture", error=str(e))
        raise HTTPException(status_code=500, detail="Capture failed")
    return app.state.pipeline.status()


@app.post("/capture/stop", response_model=StatusResponse)
async def stop_capture():
    app.state.pipeline.stop_capture()
    return app.state.pipeline.status()


@app.post("/run", response_model=StatusResponse)
async def set_running(request: RunRequest):
    """Start or pause the response cycles"""
    pipeline = app.state.pipeline
    if request.running and not pipeline.capturing:
        raise HTTPException(status_code=409, detail="Capture is not active")
    pipeline.set_running(request.running)
    return pipeline.status()


@app.put("/regions/{name}", response_model=Region)
async def update_region(name: str, region: Region):
    try:
        app.state.pipeline.update_region(name, region)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return region


@app.get("/host", response_model=HostProfile)
async def get_host():
    return app.state.pipeline.state.profile


@app.put("/host", response_model=HostProfile)
async def update_host(update: HostUpdate):
    """Update the voice, persona and mode flags"""
    return app.state.pipeline.update_host(update)


@app.get("/personalities")
async def list_personalities() -> List[Dict[str, str]]:
    return app.state.pipeline.voice_manager.list_profiles()


@app.get("/products", response_model=List[ProductData])
async def get_products():
    return app.state.pipeline.state.products


@app.put("/products", response_model=List[ProductData])
async def set_products(products: List[ProductData]):
    app.state.pipeline.set_products(products)
    return app.state.pipeline.state.products


@app.get("/chats")
async def get_chats() -> Dict[str, List[ChatMessage]]:
    """Recent chats (most recent first) and the ones still waiting"""
    pipeline = app.state.pipeline
    return {
        "recent": pipeline.state.recent_chats,
        "pending": pipeline.intake.snapshot()
    }


@app.get("/logs", response_model=List[LogEntry])
async def get_logs(limit: Optional[int] = None):
    logs = app.state.pipeline.state.logs
    return logs[:limit] if limit else logs


@app.post("/validate", response_model=ValidationResult)
async def validate_connection():
    """Probe the answer model with the configured keys"""
    return await app.state.pipeline.client.validate_connection()


@app.get("/metrics")
async def get_metrics():
    """Get service metrics in Prometheus format"""
    return await metrics_endpoint()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
