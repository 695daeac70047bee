"""Wires capture, OCR, the response scheduler and playback together"""

import asyncio
import time
from typing import Callable, List, Optional
import structlog

from .audio import SoundDeviceSink
from .capture import ScreenCaptureSource, Surface, crop_frame
from .catalog import default_products
from .config import settings
from .inference import GeminiClient
from .metrics import ocr_messages_total
from .models import (
    HostGender, HostPersonality, HostProfile, HostUpdate, LogEntry,
    ProductData, Region, SessionState, StatusResponse, SystemStatus
)
from .ocr_engine import OCRError, TesseractEngine
from .playback import PlaybackScheduler
from .prompt_manager import PromptManager
from .scheduler import ChatIntakeQueue, ResponseScheduler
from .text_reconstructor import TextReconstructor
from .voice_manager import VoiceManager

logger = structlog.get_logger(__name__)


def default_profile() -> HostProfile:
    return HostProfile(
        gender=HostGender(settings.host_gender),
        personality=HostPersonality(settings.host_personality),
        seller_mode=settings.seller_mode,
        role_description=settings.host_role_description,
        username=settings.host_username,
        gift_detection_enabled=settings.gift_detection_enabled,
        host_vision_enabled=settings.host_vision_enabled
    )


class LiveHostPipeline:
    """Owns the session state and the three drivers of a live session"""

    def __init__(
        self,
        engine: Optional[TesseractEngine] = None,
        client: Optional[GeminiClient] = None,
        sink=None,
        capture: Optional[ScreenCaptureSource] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self.voice_manager = VoiceManager()
        self.engine = engine or TesseractEngine()
        self.client = client or GeminiClient(PromptManager(self.voice_manager))
        self.sink = sink or SoundDeviceSink()
        self.capture = capture or ScreenCaptureSource(on_ended=self.stop_capture)

        self.state = SessionState(
            profile=default_profile(),
            products=default_products(),
            recent_chat_limit=settings.recent_chat_limit,
            log_limit=settings.log_limit
        )
        self.chat_region = Region.from_list(settings.chat_region)
        self.vision_region = Region.from_list(settings.vision_region)
        self.container_size = (settings.display_width, settings.display_height)
        self.chat_surface = Surface()
        self.vision_surface = Surface()

        self.reconstructor = TextReconstructor(self.engine, clock=clock)
        self.intake = ChatIntakeQueue()
        self.playback = PlaybackScheduler(self.sink, on_log=self._on_clip_started)
        self.scheduler = ResponseScheduler(
            state=self.state,
            intake=self.intake,
            playback=self.playback,
            client=self.client,
            voice_manager=self.voice_manager,
            snapshot=self.vision_snapshot,
            on_product_detected=self.highlight_product,
            clock=clock
        )

        self.total_chats = 0
        self._ocr_task: Optional[asyncio.Task] = None
        self._product_timer: Optional[asyncio.TimerHandle] = None

    @property
    def capturing(self) -> bool:
        return self._ocr_task is not None and not self._ocr_task.done()

    @property
    def running(self) -> bool:
        return self.scheduler.running

    async def initialize(self):
        try:
            await self.engine.initialize()
        except OCRError as e:
            logger.error("OCR engine unavailable, chat reading disabled", error=str(e))

    async def shutdown(self):
        self.stop_capture()
        await self.engine.terminate()
        self.capture.close()

    # Session control

    async def start_capture(self):
        if self.capturing:
            return
        await self.capture.start()
        self._ocr_task = asyncio.create_task(self._ocr_loop())
        logger.info("Capture session started")

    def stop_capture(self):
        """Stop every driver, drop queued audio and return to idle"""
        self.capture.stop()
        if self._ocr_task:
            self._ocr_task.cancel()
            self._ocr_task = None
        self.scheduler.stop()
        self.playback.stop()
        logger.info("Capture session stopped", pending_chats=len(self.intake))

    def set_running(self, running: bool) -> bool:
        """Start or pause response cycles; cycles only run while capturing"""
        if running and self.capturing:
            self.scheduler.start()
        elif not running:
            self.scheduler.stop()
        return self.running

    def update_region(self, name: str, region: Region):
        if name == "chat":
            self.chat_region = region
        elif name == "vision":
            self.vision_region = region
        else:
            raise ValueError(f"Unknown region: {name}")
        logger.info("Region updated", region=name, **region.model_dump())

    def update_host(self, update: HostUpdate) -> HostProfile:
        """Apply profile changes; a voice or persona change drops queued audio"""
        changes = update.model_dump(exclude_none=True)
        previous = self.state.profile
        profile = previous.model_copy(update=changes)
        self.state.profile = profile

        if (profile.gender, profile.personality) != (previous.gender, previous.personality):
            self.playback.clear()
            logger.info("Host voice changed",
                        gender=profile.gender.value,
                        personality=profile.personality.value)
        return profile

    def set_products(self, products: List[ProductData]):
        self.state.products = list(products)
        logger.info("Products updated", count=len(products))

    def highlight_product(self, product_id: str):
        """Mark a product as shown for a few seconds"""
        self.state.active_product_id = product_id
        if self._product_timer:
            self._product_timer.cancel()
        loop = asyncio.get_running_loop()
        self._product_timer = loop.call_later(settings.product_highlight_seconds, self._clear_product)

    def _clear_product(self):
        self.state.active_product_id = None
        self._product_timer = None

    # Drivers

    async def _ocr_loop(self):
        while True:
            await self.capture_tick()
            await asyncio.sleep(settings.capture_interval_seconds)

    async def capture_tick(self) -> int:
        """Read the chat region once and queue any new messages"""
        if not crop_frame(
            self.chat_surface,
            self.capture.latest_frame,
            self.chat_region,
            self.container_size,
            settings.min_crop_size
        ):
            return 0

        messages = await self.reconstructor.process_frame(self.chat_surface.pixels)
        if messages:
            self.state.add_chats(messages)
            self.intake.extend(messages)
            self.total_chats += len(messages)
            ocr_messages_total.inc(len(messages))
            logger.debug("Chats read", count=len(messages), pending=len(self.intake))
        return len(messages)

    def vision_snapshot(self) -> Optional[bytes]:
        """JPEG of the vision region, or None when it cannot be cropped"""
        if not crop_frame(
            self.vision_surface,
            self.capture.latest_frame,
            self.vision_region,
            self.container_size,
            settings.min_crop_size
        ):
            return None
        return self.vision_surface.to_jpeg(settings.vision_jpeg_quality)

    def _on_clip_started(self, entry: LogEntry):
        self.state.add_log(entry)

    # Projection

    def system_status(self) -> SystemStatus:
        if self.playback.is_playing:
            return SystemStatus.SPEAKING
        if self.scheduler.busy:
            return SystemStatus.THINKING
        if self.running:
            return SystemStatus.ACTIVE
        if self.capturing:
            return SystemStatus.CAPTURING
        return SystemStatus.IDLE

    def status(self) -> StatusResponse:
        return StatusResponse(
            status=self.system_status(),
            capturing=self.capturing,
            running=self.running,
            pending_chats=len(self.intake),
            audio_queue=self.playback.pending,
            total_chats=self.total_chats,
            total_answered=self.scheduler.total_answered,
            latency_ms=self.state.latency_ms,
            quota_status=self.client.quota_status,
            active_product_id=self.state.active_product_id,
            last_error=self.client.last_error
        )
