import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, model_validator

from cardscan.core.models import ApiCard, ScanRequest

logger = logging.getLogger(__name__)


class CaptureFrame:
    """
    One captured camera image plus its orientation.

    The frame is owned by a single recognition attempt and must be released
    when that attempt ends. ``release()`` only fires ``on_release`` once.
    """

    def __init__(self, image: Any, rotation: int = 0, on_release: Optional[Callable[[], None]] = None):
        self.image = image
        self.rotation = rotation % 360
        self._on_release = on_release
        self.released = False

    def release(self):
        if self.released:
            logger.warning("CaptureFrame released twice, ignoring")
            return
        self.released = True
        self.image = None
        if self._on_release:
            self._on_release()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


# --- Candidates ---

class CandidateKind(str, Enum):
    NAME = "name"             # extracted by OCR
    SET_NUMBER = "set_number"
    BARCODE = "barcode"
    MANUAL = "manual"         # typed by the user


class ScanCandidate(BaseModel):
    """A single identifying guess about a card, ready for the resolution API."""
    model_config = ConfigDict(frozen=True)

    kind: CandidateKind
    card_name: Optional[str] = None
    set_code: Optional[str] = None
    collector_number: Optional[str] = None
    barcode: Optional[str] = None

    @model_validator(mode="after")
    def _check_shape(self):
        populated = {
            name for name in ("card_name", "set_code", "collector_number", "barcode")
            if getattr(self, name)
        }
        expected = {
            CandidateKind.NAME: {"card_name"},
            CandidateKind.MANUAL: {"card_name"},
            CandidateKind.SET_NUMBER: {"set_code", "collector_number"},
            CandidateKind.BARCODE: {"barcode"},
        }[self.kind]
        if populated != expected:
            raise ValueError(f"{self.kind.value} candidate requires exactly {sorted(expected)}, got {sorted(populated)}")
        return self

    @classmethod
    def from_name(cls, name: str) -> "ScanCandidate":
        return cls(kind=CandidateKind.NAME, card_name=name.strip())

    @classmethod
    def from_manual(cls, text: str) -> "ScanCandidate":
        return cls(kind=CandidateKind.MANUAL, card_name=text.strip())

    @classmethod
    def from_set(cls, set_code: str, collector_number: str) -> "ScanCandidate":
        return cls(kind=CandidateKind.SET_NUMBER, set_code=set_code.strip(), collector_number=collector_number.strip())

    @classmethod
    def from_barcode(cls, payload: str) -> "ScanCandidate":
        return cls(kind=CandidateKind.BARCODE, barcode=payload)

    def to_request(self) -> ScanRequest:
        return ScanRequest(
            card_name=self.card_name,
            set_code=self.set_code,
            collector_number=self.collector_number,
            barcode=self.barcode,
        )

    def describe(self) -> str:
        if self.kind == CandidateKind.SET_NUMBER:
            return f"{self.set_code} #{self.collector_number}"
        if self.kind == CandidateKind.BARCODE:
            return f"barcode {self.barcode}"
        return self.card_name or ""


# --- Recognition outcomes ---

@dataclass(frozen=True)
class BarcodeFound:
    payload: str

@dataclass(frozen=True)
class TextFound:
    name: str

@dataclass(frozen=True)
class NothingFound:
    pass

@dataclass(frozen=True)
class Failed:
    cause: str

RecognitionOutcome = Union[BarcodeFound, TextFound, NothingFound, Failed]


# --- Resolution outcomes ---

NOT_FOUND = "not found"
TRANSPORT_ERROR = "transport error"

@dataclass(frozen=True)
class Resolved:
    card: ApiCard

@dataclass(frozen=True)
class Unresolved:
    reason: str
    detail: Optional[str] = None  # server supplied error text, if any
    status: Optional[int] = None

    @property
    def not_found(self) -> bool:
        return self.reason == NOT_FOUND

ScanOutcome = Union[Resolved, Unresolved]


@dataclass
class BatchResult:
    ok: bool
    total_submitted: int = 0
    successful: int = 0
    failed: int = 0
    results: List[ScanOutcome] = field(default_factory=list)
    session_id: Optional[int] = None
    error: Optional[str] = None


# --- Pipeline ---

class PipelineState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    RECOGNIZING = "recognizing"
    RESOLVING = "resolving"
    AWAITING_NEXT = "awaiting_next"
    FINISHED = "finished"


class CycleStatus(str, Enum):
    RESOLVED = "resolved"
    NOT_FOUND = "not_found"
    NOTHING_DETECTED = "nothing_detected"
    RECOGNITION_FAILED = "recognition_failed"
    CAPTURE_UNAVAILABLE = "capture_unavailable"
    TRANSPORT_ERROR = "transport_error"
    BUSY = "busy"
    FINISHED = "finished"


@dataclass(frozen=True)
class CycleReport:
    """User visible result of one capture cycle."""
    status: CycleStatus
    message: str
    state: PipelineState
    candidate: Optional[ScanCandidate] = None
    outcome: Optional[ScanOutcome] = None

    @property
    def ok(self) -> bool:
        return self.status == CycleStatus.RESOLVED
