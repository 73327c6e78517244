import logging
from typing import Callable, List

from cardscan.core.text_utils import extract_card_name
from cardscan.services.scanner.models import (
    BarcodeFound, CaptureFrame, Failed, NothingFound, RecognitionOutcome, TextFound
)

logger = logging.getLogger(__name__)


class RecognitionFallbackCoordinator:
    """
    Turns one captured frame into one recognition outcome.

    Stage 1 asks the barcode decoder. Only when it finds nothing (or fails)
    does stage 2 run text recognition on the same frame. The frame is
    released exactly once, whichever branch ends the attempt.
    """

    def __init__(self, decoder, text_recognizer, extractor: Callable[[str], str] = extract_card_name):
        self.decoder = decoder
        self.text_recognizer = text_recognizer
        self.extractor = extractor
        self._closed = False

    async def recognize(self, frame: CaptureFrame) -> RecognitionOutcome:
        with frame:
            payloads = await self._decode(frame)
            if payloads:
                logger.info(f"Barcode detected: {payloads[0]}")
                return BarcodeFound(payloads[0])
            return await self._recognize_text(frame)

    async def _decode(self, frame: CaptureFrame) -> List[str]:
        try:
            payloads = await self.decoder.decode(frame)
        except Exception as e:
            logger.warning(f"Barcode decode failed, falling back to text recognition: {e}")
            return []
        return [p for p in (payloads or []) if p]

    async def _recognize_text(self, frame: CaptureFrame) -> RecognitionOutcome:
        try:
            text = await self.text_recognizer.recognize_text(frame)
        except Exception as e:
            logger.error(f"Text recognition failed: {e}")
            return Failed(str(e) or type(e).__name__)

        name = self.extractor(text or "")
        if not name:
            logger.info("No card name in recognized text")
            return NothingFound()

        logger.info(f"Scanned Name: {name}")
        return TextFound(name)

    def close(self):
        """Shuts down both recognition services. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        for service in (self.decoder, self.text_recognizer):
            close = getattr(service, "close", None)
            if close is None:
                continue
            try:
                close()
            except Exception as e:
                logger.error(f"Error closing {type(service).__name__}: {e}")
