import asyncio
import logging
from typing import List, Optional

import cv2
import numpy as np
import easyocr
from pyzbar import pyzbar

from cardscan.core.errors import RecognitionError
from cardscan.services.scanner.models import CaptureFrame

logger = logging.getLogger(__name__)


def upright_image(frame: CaptureFrame) -> np.ndarray:
    """Rotates the frame image so the card reads top-down."""
    if frame.image is None:
        raise RecognitionError("Frame already released")
    # rotation is clockwise degrees, np.rot90 turns counter-clockwise
    turns = (frame.rotation // 90) % 4
    return np.rot90(frame.image, k=-turns) if turns else frame.image


def to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image


class PyzbarDecoder:
    """Structured-code (barcode/QR) decoder backed by zbar."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled

    async def decode(self, frame: CaptureFrame) -> List[str]:
        if not self.enabled:
            return []
        image = upright_image(frame)
        return await asyncio.to_thread(self._decode, image)

    def _decode(self, image: np.ndarray) -> List[str]:
        try:
            symbols = pyzbar.decode(to_gray(image))
        except Exception as e:
            raise RecognitionError(f"zbar decode failed: {e}") from e
        return [s.data.decode('utf-8', errors='replace') for s in symbols]

    def close(self):
        self.enabled = False


class EasyOcrRecognizer:
    """Free-text recognizer. The EasyOCR reader is created lazily on first use."""

    def __init__(self, languages: Optional[List[str]] = None, gpu: bool = False):
        self.languages = languages or ['en']
        self.gpu = gpu
        self.reader = None

    def get_reader(self):
        if self.reader is None:
            logger.info("Initializing EasyOCR Reader...")
            self.reader = easyocr.Reader(self.languages, gpu=self.gpu)
        return self.reader

    async def recognize_text(self, frame: CaptureFrame) -> str:
        image = upright_image(frame)
        lines = await asyncio.to_thread(self._read, image)
        return "\n".join(lines)

    def _read(self, image: np.ndarray) -> List[str]:
        try:
            # detail=0 returns simple list of strings
            return self.get_reader().readtext(image, detail=0)
        except Exception as e:
            raise RecognitionError(f"OCR failed: {e}") from e

    def close(self):
        self.reader = None
