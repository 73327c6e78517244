"""
OpenCV webcam capture adapter.
The camera is opened once per scan screen (``bind``) and released once (``unbind``).
"""
import asyncio
import logging

import cv2

from cardscan.core.errors import CaptureUnavailable
from cardscan.services.scanner.models import CaptureFrame

logger = logging.getLogger(__name__)


class Cv2Camera:
    def __init__(self, index: int = 0, rotation: int = 0):
        self.index = index
        self.rotation = rotation
        self.torch_on = False
        self._cap = None

    @property
    def ready(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    def bind(self):
        if self.ready:
            return
        self._cap = cv2.VideoCapture(self.index)
        if not self._cap.isOpened():
            logger.error(f"Camera binding failed for device {self.index}")
        else:
            logger.info(f"Camera {self.index} bound")

    def unbind(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info(f"Camera {self.index} released")

    async def acquire_frame(self) -> CaptureFrame:
        if not self.ready:
            raise CaptureUnavailable("Camera not ready")

        ret, image = await asyncio.to_thread(self._cap.read)
        if not ret or image is None:
            raise CaptureUnavailable("Frame capture failed")
        return CaptureFrame(image, rotation=self.rotation)

    def set_torch(self, on: bool):
        # OpenCV exposes no portable torch control; the state is kept for the UI.
        self.torch_on = on
        logger.info(f"Torch {'on' if on else 'off'} requested for camera {self.index}")
