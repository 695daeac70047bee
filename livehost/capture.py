"""Screen capture source and region-based frame cropping"""

import asyncio
import io
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Tuple
import mss
from mss.exception import ScreenShotError
import numpy as np
import structlog
from PIL import Image

from .config import settings
from .models import Region

logger = structlog.get_logger(__name__)

SourceRect = Tuple[int, int, int, int]


class Surface:
    """Reusable raster target, resized to the crop on every draw"""

    def __init__(self):
        self.pixels = np.zeros((0, 0, 3), dtype=np.uint8)

    @property
    def width(self) -> int:
        return self.pixels.shape[1]

    @property
    def height(self) -> int:
        return self.pixels.shape[0]

    def resize(self, width: int, height: int):
        if self.pixels.shape[:2] != (height, width):
            self.pixels = np.zeros((height, width, 3), dtype=np.uint8)

    def draw(self, frame: np.ndarray, rect: SourceRect):
        sx, sy, sw, sh = rect
        self.resize(sw, sh)
        self.pixels[:, :, :] = frame[sy:sy + sh, sx:sx + sw, :3]

    def to_jpeg(self, quality: int = 60) -> bytes:
        """Encode the current raster for transmission"""
        buffer = io.BytesIO()
        Image.fromarray(self.pixels).save(buffer, format="JPEG", quality=quality)
        return buffer.getvalue()


def compute_source_rect(
    native_size: Tuple[int, int],
    container_size: Tuple[float, float],
    region: Region,
    min_size: int = 10
) -> Optional[SourceRect]:
    """Map a region drawn over an aspect-fit video onto native pixels.

    The video is letter- or pillar-boxed inside the container, so the region is
    first shifted by the box offset, then scaled to native resolution and
    clamped to the frame. Returns None for the transient states where no crop
    is possible: no frame yet, unmeasured container, or a degenerate crop.
    """
    native_w, native_h = native_size
    container_w, container_h = container_size
    if native_w == 0 or native_h == 0:
        return None
    if container_w == 0 or container_h == 0:
        return None

    video_ratio = native_w / native_h
    container_ratio = container_w / container_h

    if container_ratio > video_ratio:
        displayed_h = container_h
        displayed_w = displayed_h * video_ratio
        offset_x = (container_w - displayed_w) / 2
        offset_y = 0.0
    else:
        displayed_w = container_w
        displayed_h = displayed_w / video_ratio
        offset_x = 0.0
        offset_y = (container_h - displayed_h) / 2

    scale_x = native_w / displayed_w
    scale_y = native_h / displayed_h

    sx = max(0.0, (region.x - offset_x) * scale_x)
    sy = max(0.0, (region.y - offset_y) * scale_y)
    sw = min(region.width * scale_x, native_w - sx)
    sh = min(region.height * scale_y, native_h - sy)

    if sw <= min_size or sh <= min_size:
        return None

    return int(sx), int(sy), int(sw), int(sh)


def crop_frame(
    surface: Surface,
    frame: Optional[np.ndarray],
    region: Region,
    container_size: Tuple[float, float],
    min_size: int = 10
) -> bool:
    """Rasterize the region of `frame` into `surface`; False when skipped"""
    if frame is None:
        return False
    native_h, native_w = frame.shape[:2]
    rect = compute_source_rect((native_w, native_h), container_size, region, min_size)
    if rect is None:
        return False
    surface.draw(frame, rect)
    return True


class ScreenCaptureSource:
    """Live display capture with mss, keeping only the newest frame"""

    def __init__(self, on_ended: Optional[Callable[[], None]] = None):
        self.monitor_index = settings.capture_monitor
        self.frame_interval = 1.0 / max(1, settings.capture_fps)
        self.on_ended = on_ended
        self.latest_frame: Optional[np.ndarray] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capture")
        self._sct = None
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        """Start grabbing frames at the configured rate hint"""
        if self.active:
            return
        self.latest_frame = None
        self._task = asyncio.create_task(self._grab_loop())
        logger.info("Screen capture started", monitor=self.monitor_index, fps=settings.capture_fps)

    def stop(self):
        if self._task:
            self._task.cancel()
            self._task = None
        self.latest_frame = None

    def close(self):
        self.stop()
        self._executor.submit(self._close_sct)
        self._executor.shutdown(wait=False)

    async def _grab_loop(self):
        loop = asyncio.get_running_loop()
        while True:
            try:
                self.latest_frame = await loop.run_in_executor(self._executor, self._grab)
            except ScreenShotError as e:
                logger.warning("Screen capture ended", error=str(e))
                self._task = None
                if self.on_ended:
                    self.on_ended()
                return
            await asyncio.sleep(self.frame_interval)

    def _grab(self) -> np.ndarray:
        # mss handles are thread-bound, so the handle lives on the executor thread
        if self._sct is None:
            self._sct = mss.mss()
        monitors = self._sct.monitors
        if self.monitor_index >= len(monitors):
            raise ScreenShotError(f"Monitor {self.monitor_index} is not available")
        shot = self._sct.grab(monitors[self.monitor_index])
        bgra = np.asarray(shot)
        return np.ascontiguousarray(bgra[:, :, [2, 1, 0]])

    def _close_sct(self):
        if self._sct is not None:
            self._sct.close()
            self._sct = None
