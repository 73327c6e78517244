import logging
import threading
from typing import Any, Optional

logger = logging.getLogger(__name__)

_ANONYMOUS = object()


class CaptureGate:
    """
    Single-flight guard for capture cycles.

    At most one holder at a time. ``try_acquire`` never blocks: it returns
    False while the gate is held. The holder is remembered so that a second
    ``release`` (or a release by someone else) is a logged no-op instead of
    opening the gate under a running cycle.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._holder: Optional[Any] = None

    @property
    def busy(self) -> bool:
        with self._lock:
            return self._holder is not None

    def try_acquire(self, holder: Any = None) -> bool:
        with self._lock:
            if self._holder is not None:
                return False
            self._holder = holder if holder is not None else _ANONYMOUS
            return True

    def release(self, holder: Any = None) -> bool:
        """Returns True if the gate was actually opened by this call."""
        holder = holder if holder is not None else _ANONYMOUS
        with self._lock:
            if self._holder is None:
                logger.debug("CaptureGate.release on an open gate ignored")
                return False
            if self._holder is not holder:
                logger.warning("CaptureGate.release by a non-holder ignored")
                return False
            self._holder = None
            return True
