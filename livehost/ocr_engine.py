"""Tesseract OCR capability: raster in, text lines with boxes out"""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, List, Optional, Tuple
import numpy as np
import pytesseract
import structlog

from .config import settings
from .models import BoundingBox, OCRLine

logger = structlog.get_logger(__name__)


class OCRError(Exception):
    """OCR engine could not be brought up"""


class TesseractEngine:
    """Line-level OCR over pytesseract word output"""

    def __init__(self, languages: Optional[str] = None, whitelist: Optional[str] = None):
        self.languages = languages or settings.ocr_languages
        self.whitelist = whitelist or settings.ocr_char_whitelist
        self._executor: Optional[ThreadPoolExecutor] = None

    @property
    def ready(self) -> bool:
        return self._executor is not None

    async def initialize(self):
        """Warm up the engine once per process"""
        if self._executor is not None:
            return
        loop = asyncio.get_running_loop()
        try:
            version = await loop.run_in_executor(None, pytesseract.get_tesseract_version)
        except pytesseract.TesseractNotFoundError as e:
            logger.error("Tesseract binary not found", error=str(e))
            raise OCRError("Tesseract is not installed or not on PATH") from e
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ocr")
        logger.info("OCR engine initialized", version=str(version), languages=self.languages)

    async def terminate(self):
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
            logger.info("OCR engine terminated")

    async def recognize(self, image: np.ndarray) -> List[OCRLine]:
        """Recognize text lines in a grayscale or RGB raster"""
        if self._executor is None:
            raise OCRError("OCR engine is not initialized")
        loop = asyncio.get_running_loop()
        data = await loop.run_in_executor(self._executor, self._image_to_data, image)
        return group_words_into_lines(data)

    def _image_to_data(self, image: np.ndarray) -> Dict[str, list]:
        config = f"-c tessedit_char_whitelist={self.whitelist}"
        return pytesseract.image_to_data(
            image,
            lang=self.languages,
            config=config,
            output_type=pytesseract.Output.DICT
        )


def group_words_into_lines(data: Dict[str, list]) -> List[OCRLine]:
    """Collapse tesseract word rows into lines ordered top to bottom"""
    grouped: Dict[Tuple[int, int, int], Dict] = {}

    for i, word in enumerate(data.get("text", [])):
        conf = float(data["conf"][i])
        word = (word or "").strip()
        # Non-word rows (page/block/line headers) carry conf -1
        if conf < 0 or not word:
            continue

        key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
        left, top = data["left"][i], data["top"][i]
        right, bottom = left + data["width"][i], top + data["height"][i]

        line = grouped.get(key)
        if line is None:
            grouped[key] = {
                "words": [word], "confs": [conf],
                "x0": left, "y0": top, "x1": right, "y1": bottom
            }
        else:
            line["words"].append(word)
            line["confs"].append(conf)
            line["x0"] = min(line["x0"], left)
            line["y0"] = min(line["y0"], top)
            line["x1"] = max(line["x1"], right)
            line["y1"] = max(line["y1"], bottom)

    lines = [
        OCRLine(
            text=" ".join(line["words"]),
            bbox=BoundingBox(x0=line["x0"], y0=line["y0"], x1=line["x1"], y1=line["y1"]),
            confidence=sum(line["confs"]) / len(line["confs"])
        )
        for line in grouped.values()
    ]
    lines.sort(key=lambda l: (l.bbox.y0, l.bbox.x0))
    return lines
