"""OCR post-processing: rebuild chat messages from recognized lines"""

import re
import time
import uuid
from typing import Callable, Dict, Iterator, List, Optional, Tuple
import numpy as np
import structlog

from .config import settings
from .models import ChatMessage, OCRLine
from .ocr_engine import TesseractEngine

logger = structlog.get_logger(__name__)

SENTINEL_AUTHOR = "Viewer"

# Platform notifications that are not questions for the host
SYSTEM_EVENT_PHRASES = [
    "followed the host", "mengikuti host",
    "liked the stream", "menyukai siaran",
    "shared the live", "membagikan live",
    "sent a gift", "mengirim hadiah",
    "added to cart", "menambahkan ke keranjang", "telah memesan",
    "welcome to the live", "selamat datang", "tap tap",
    "top viewer", "gifter", "subscribe", "berlangganan", "joined", "bergabung",
    "invited you", "mengundang anda",
]

BADGE_PATTERNS = [
    re.compile(r"No\.\s*\d+", re.IGNORECASE),
    re.compile(r"No\s*\d+", re.IGNORECASE),
    re.compile(r"Lvl\s*\d+", re.IGNORECASE),
    re.compile(r"Rank\s*\d+", re.IGNORECASE),
    re.compile(r"\[.*?\]"),
    re.compile("★|☆|💎|👑|🔥|✨|⚡|📍|👤|❤️|🧡|💛|💚|💜|🖤|👋|🌹"),
]

# (pattern, replacement) applied in order to author tokens
AUTHOR_METADATA_PATTERNS = [
    (re.compile(r"^[A-Z]\d\s+"), ""),       # role tags: A8, Q1
    (re.compile(r"^[A-Z]\)\s+"), ""),       # Q)
    (re.compile(r"^\(\d+,\s*"), ""),        # (254,
    (re.compile(r"^[A-Z]{2}\s+"), ""),      # AS, RM
    (re.compile(r"^[0-9]+\s+"), ""),
    (re.compile(r"\s+[0-9]+$"), ""),
    (re.compile(r"[#()]"), ""),
    (re.compile(r"\s{2,}"), " "),
]

NON_ALNUM_PREFIX = re.compile(r"^[^a-zA-Z0-9]+")
NON_ALNUM = re.compile(r"[^a-z0-9]")


def preprocess(pixels: np.ndarray, min_range: float = 30.0, threshold: float = 150.0) -> np.ndarray:
    """Contrast-stretch and binarize an RGB raster for OCR.

    Chat text is bright on a dark overlay; the output is inverted so text ends
    up black on white. Stretching is skipped on flat rasters where it would
    only amplify noise.
    """
    rgb = pixels[:, :, :3].astype(np.float32)
    avg = rgb.mean(axis=2)
    low, high = float(avg.min()), float(avg.max())

    if high - low < min_range:
        low, high = 0.0, 255.0
    if high == low:
        high = 255.0

    gray = 0.299 * rgb[:, :, 0] + 0.587 * rgb[:, :, 1] + 0.114 * rgb[:, :, 2]
    stretched = (gray - low) / (high - low) * 255.0
    return np.where(stretched > threshold, 0, 255).astype(np.uint8)


def clean_text(raw: str) -> str:
    """Strip badges, level tokens and decorative glyphs"""
    cleaned = raw
    for pattern in BADGE_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    return cleaned.strip()


def sanitize_author(raw: str) -> str:
    name = raw
    for pattern, replacement in AUTHOR_METADATA_PATTERNS:
        name = pattern.sub(replacement, name)
    name = NON_ALNUM_PREFIX.sub("", name).strip()
    if len(name) < 2 or name.isdigit():
        return SENTINEL_AUTHOR
    return name


def is_system_event(body: str) -> bool:
    """Platform notification check; questions always pass"""
    low = body.lower()
    if "?" in low:
        return False
    return any(phrase in low for phrase in SYSTEM_EVENT_PHRASES)


def fingerprint(author: str, body: str) -> str:
    return NON_ALNUM.sub("", f"{author}:{body}".lower())


def filter_lines(lines: List[OCRLine], min_confidence: float = 50.0) -> List[OCRLine]:
    return [
        line for line in lines
        if line.confidence > min_confidence and len(clean_text(line.text)) > 1
    ]


def cluster_lines(
    lines: List[OCRLine],
    gap_factor: float = 1.5,
    max_x_offset: float = 300.0
) -> List[List[OCRLine]]:
    """Group consecutive lines into message blocks, top to bottom"""
    clusters: List[List[OCRLine]] = []
    current: List[OCRLine] = []

    for line in lines:
        if not current:
            current.append(line)
            continue

        prev = current[-1]
        vertical_gap = line.bbox.y0 - prev.bbox.y1
        close = vertical_gap < prev.bbox.height * gap_factor
        aligned = abs(line.bbox.x0 - prev.bbox.x0) < max_x_offset

        if close and aligned:
            current.append(line)
        else:
            clusters.append(current)
            current = [line]

    if current:
        clusters.append(current)
    return clusters


def split_cluster(
    cluster: List[OCRLine],
    author_max_length: int = 25,
    colon_author_max_length: int = 20
) -> Optional[Tuple[str, str]]:
    """Split a block into (author, body); None when it holds no message"""
    author = SENTINEL_AUTHOR
    texts = [clean_text(line.text) for line in cluster]

    if len(texts) >= 2:
        first = texts[0]
        if len(first) <= author_max_length and "?" not in first:
            author = sanitize_author(first)
            body = " ".join(texts[1:])
        else:
            body = " ".join(texts)
    else:
        text = texts[0]
        if len(text) <= 2:
            return None
        head, sep, tail = text.partition(":")
        if sep and len(head) < colon_author_max_length:
            author = sanitize_author(head)
            body = tail.strip()
        else:
            body = text

    body = body.strip()
    if len(body) < 2:
        return None
    return author, body


class FingerprintTable:
    """Short-window duplicate suppression keyed by normalized author+body"""

    def __init__(
        self,
        window_seconds: float = 15.0,
        evict_after_seconds: float = 60.0,
        limit: int = 500
    ):
        self.window_seconds = window_seconds
        self.evict_after_seconds = evict_after_seconds
        self.limit = limit
        self.seen: Dict[str, float] = {}

    def admit(self, key: str, now: float) -> bool:
        """Record and return True unless `key` was seen inside the window"""
        last_seen = self.seen.get(key)
        if last_seen is not None and now - last_seen <= self.window_seconds:
            return False

        self.seen[key] = now
        if len(self.seen) > self.limit:
            self.evict(now)
        return True

    def evict(self, now: float):
        stale = [k for k, ts in self.seen.items() if now - ts > self.evict_after_seconds]
        for key in stale:
            del self.seen[key]

    def __len__(self) -> int:
        return len(self.seen)


class TextReconstructor:
    """Turns a captured chat-region raster into new chat messages"""

    def __init__(self, engine: TesseractEngine, clock: Callable[[], float] = time.monotonic):
        self.engine = engine
        self.clock = clock
        self.fingerprints = FingerprintTable(
            window_seconds=settings.dedup_window_seconds,
            evict_after_seconds=settings.dedup_evict_after_seconds,
            limit=settings.dedup_table_limit
        )
        self._processing = False

    async def process_frame(self, pixels: np.ndarray) -> List[ChatMessage]:
        """OCR one raster and return the messages not seen recently"""
        if self._processing or not self.engine.ready:
            return []
        if pixels.shape[0] <= settings.min_crop_size or pixels.shape[1] <= settings.min_crop_size:
            return []

        self._processing = True
        try:
            binary = preprocess(pixels, settings.contrast_min_range, settings.binarize_threshold)
            lines = await self.engine.recognize(binary)
            return list(self.reconstruct(lines))
        except Exception as e:
            logger.error("OCR frame processing failed", error=str(e))
            return []
        finally:
            self._processing = False

    def reconstruct(self, lines: List[OCRLine]) -> Iterator[ChatMessage]:
        """Yield de-duplicated messages in vertical order"""
        now = self.clock()
        valid = filter_lines(lines, settings.ocr_min_confidence)
        clusters = cluster_lines(valid, settings.cluster_gap_factor, settings.cluster_max_x_offset)

        for cluster in clusters:
            parts = split_cluster(
                cluster,
                settings.author_max_length,
                settings.colon_author_max_length
            )
            if parts is None:
                continue
            author, body = parts
            if is_system_event(body):
                logger.debug("Dropped system event", body=body)
                continue
            if not self.fingerprints.admit(fingerprint(author, body), now):
                continue

            yield ChatMessage(
                id=f"ocr_{uuid.uuid4().hex[:12]}",
                author=author,
                body=body,
                observed_at=now
            )
