import importlib.util
import logging

logger = logging.getLogger(__name__)

VISION_MODULES = ("cv2", "numpy", "easyocr", "pyzbar")

# Only probe here: importing easyocr pulls in torch, which the pipeline core does not need.
_missing = [name for name in VISION_MODULES if importlib.util.find_spec(name) is None]

VISION_AVAILABLE = not _missing

if _missing:
    logger.warning(f"Vision dependencies missing: {', '.join(_missing)}. Camera scanning will be disabled.")
