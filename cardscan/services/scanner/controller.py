import itertools
import logging
from typing import Callable, List, Optional

from cardscan.core.errors import CaptureUnavailable
from cardscan.services.scanner.gate import CaptureGate
from cardscan.services.scanner.models import (
    BarcodeFound, BatchResult, CycleReport, CycleStatus, Failed, NothingFound, PipelineState,
    RecognitionOutcome, Resolved, ScanCandidate, ScanOutcome, TextFound, TRANSPORT_ERROR, Unresolved
)
from cardscan.services.scanner.recognition import RecognitionFallbackCoordinator
from cardscan.services.scanner.resolver import ScanResolver
from cardscan.services.scanner.session import ScanSession

logger = logging.getLogger(__name__)

S = PipelineState

TRANSITIONS = {
    S.IDLE: {S.CAPTURING, S.FINISHED},
    S.CAPTURING: {S.RECOGNIZING, S.RESOLVING, S.IDLE},
    S.RECOGNIZING: {S.RESOLVING, S.IDLE},
    S.RESOLVING: {S.AWAITING_NEXT, S.FINISHED, S.IDLE},
    S.AWAITING_NEXT: {S.IDLE},
    S.FINISHED: set(),
}


class PipelineController:
    """
    Drives capture -> recognize -> resolve cycles for one scan screen.

    Every cycle holds the CaptureGate from the moment it is accepted until it
    reaches a terminal status, so taps during a running cycle are dropped.
    All failures of a cycle end up as a CycleReport; none of them stops the
    pipeline. ``close()`` tears down the camera and recognition services and
    makes any late result a no-op.
    """

    def __init__(self, camera, recognizer: RecognitionFallbackCoordinator, resolver: ScanResolver,
                 session: Optional[ScanSession] = None, batch: bool = False,
                 gate: Optional[CaptureGate] = None, scan_logger=None,
                 on_status: Optional[Callable[[str], None]] = None):
        if batch and session is None:
            raise ValueError("Batch mode requires a ScanSession")
        self.camera = camera
        self.recognizer = recognizer
        self.resolver = resolver
        self.session = session
        self.batch = batch
        self.gate = gate or CaptureGate()
        self.scan_logger = scan_logger
        self.on_status = on_status

        self._state = S.IDLE
        self.history: List[PipelineState] = [S.IDLE]
        self.status_message = "Idle"
        self._cycle_ids = itertools.count(1)
        self._closed = False

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def mode(self) -> str:
        return "batch" if self.batch else "single"

    @property
    def finished(self) -> bool:
        return self._state == S.FINISHED

    @property
    def scanned_count(self) -> int:
        return len(self.session) if self.session is not None else 0

    def _transition(self, new_state: PipelineState):
        if new_state not in TRANSITIONS[self._state]:
            raise RuntimeError(f"Illegal pipeline transition {self._state.value} -> {new_state.value}")
        logger.info(f"Pipeline {self._state.value} -> {new_state.value}")
        self._state = new_state
        self.history.append(new_state)

    def _set_status(self, message: str):
        self.status_message = message
        if self.on_status:
            try:
                self.on_status(message)
            except Exception as e:
                logger.error(f"Status listener failed: {e}")

    def _report(self, status: CycleStatus, message: str, candidate: Optional[ScanCandidate] = None,
                outcome: Optional[ScanOutcome] = None) -> CycleReport:
        self._set_status(message)
        return CycleReport(status=status, message=message, state=self._state, candidate=candidate, outcome=outcome)

    def _settle(self):
        """Puts a cycle that left through an exception back to Idle."""
        if self._closed or self._state in (S.IDLE, S.FINISHED):
            return
        logger.error(f"Cycle aborted in {self._state.value}, resetting to idle")
        self._state = S.IDLE
        self.history.append(S.IDLE)

    def _discarded(self) -> CycleReport:
        logger.info("Result arrived after teardown, discarded")
        return CycleReport(status=CycleStatus.FINISHED, message="Scanner closed", state=self._state)

    # --- Capture cycle ---

    async def capture(self, manual_text: str = "") -> CycleReport:
        """
        Runs one full cycle. A non-empty ``manual_text`` skips the camera and
        is resolved as a typed card name.
        """
        if self._closed or self.finished:
            return CycleReport(status=CycleStatus.FINISHED, message="Scanner finished", state=self._state)

        cycle_id = next(self._cycle_ids)
        if not self.gate.try_acquire(cycle_id):
            logger.warning("Capture ignored: a scan is already in progress")
            return CycleReport(status=CycleStatus.BUSY, message="Processing...", state=self._state)

        try:
            report = await self._run_cycle((manual_text or "").strip())
        finally:
            self._settle()
            self.gate.release(cycle_id)

        if self.scan_logger is not None and not self._closed and report.status != CycleStatus.FINISHED:
            await self.scan_logger.log_cycle(report, self.mode)
        return report

    async def _run_cycle(self, manual_text: str) -> CycleReport:
        self._transition(S.CAPTURING)

        if manual_text:
            candidate = ScanCandidate.from_manual(manual_text)
            self._transition(S.RESOLVING)
            return await self._resolve(candidate)

        self._set_status("Processing...")
        if not getattr(self.camera, "ready", True):
            self._transition(S.IDLE)
            return self._report(CycleStatus.CAPTURE_UNAVAILABLE, "Camera not ready")

        try:
            frame = await self.camera.acquire_frame()
        except Exception as e:
            if self._closed:
                return self._discarded()
            if isinstance(e, CaptureUnavailable):
                logger.warning(f"Capture failed: {e}")
            else:
                logger.error(f"Camera error during capture: {e}")
            self._transition(S.IDLE)
            return self._report(CycleStatus.CAPTURE_UNAVAILABLE, "Capture failed")

        if self._closed:
            frame.release()
            return self._discarded()

        self._transition(S.RECOGNIZING)
        outcome = await self.recognizer.recognize(frame)
        if self._closed:
            return self._discarded()

        candidate = self._candidate_for(outcome)
        if candidate is None:
            self._transition(S.IDLE)
            if isinstance(outcome, Failed):
                return self._report(CycleStatus.RECOGNITION_FAILED, "Scan failed")
            return self._report(CycleStatus.NOTHING_DETECTED, "No card detected")

        self._transition(S.RESOLVING)
        return await self._resolve(candidate)

    @staticmethod
    def _candidate_for(outcome: RecognitionOutcome) -> Optional[ScanCandidate]:
        if isinstance(outcome, BarcodeFound):
            return ScanCandidate.from_barcode(outcome.payload)
        if isinstance(outcome, TextFound):
            return ScanCandidate.from_name(outcome.name)
        if not isinstance(outcome, (NothingFound, Failed)):
            logger.error(f"Unexpected recognition outcome: {outcome!r}")
        return None

    async def _resolve(self, candidate: ScanCandidate) -> CycleReport:
        try:
            outcome = await self.resolver.resolve(candidate)
        except Exception as e:
            logger.error(f"Resolver failed for {candidate.describe()}: {e}")
            outcome = Unresolved(TRANSPORT_ERROR, detail=str(e) or type(e).__name__)
        if self._closed:
            return self._discarded()

        if isinstance(outcome, Resolved):
            message = f"Added: {outcome.card.name}"
            if self.batch:
                self.session.append(candidate)
                self._transition(S.AWAITING_NEXT)
                self._transition(S.IDLE)
            else:
                self._transition(S.FINISHED)
            return self._report(CycleStatus.RESOLVED, message, candidate, outcome)

        if self.batch:
            self._transition(S.AWAITING_NEXT)
        self._transition(S.IDLE)

        if outcome.not_found:
            return self._report(CycleStatus.NOT_FOUND, "Card not found", candidate, outcome)
        return self._report(CycleStatus.TRANSPORT_ERROR, f"Error: {outcome.reason}", candidate, outcome)

    # --- Batch ---

    async def finish(self) -> Optional[BatchResult]:
        """
        Ends the run. In batch mode with scanned cards this submits the batch:
        on success the session is cleared and the pipeline finishes, on
        failure the cards are kept so the submit can be retried.
        Returns None when nothing was submitted.
        """
        if self._closed or self.finished:
            return None

        token = ("finish", next(self._cycle_ids))
        if not self.gate.try_acquire(token):
            logger.warning("Finish ignored: a scan is still in progress")
            return None

        try:
            if not self.batch or self.session.is_empty():
                self._transition(S.FINISHED)
                self._set_status("Done")
                return None

            self._set_status("Submitting batch...")
            result = await self.session.submit()
            if self._closed:
                logger.info("Batch result arrived after teardown, session left untouched")
                return result

            if result.ok:
                self.session.clear()
                self._transition(S.FINISHED)
                self._set_status(f"Scanned {result.successful}/{result.total_submitted} cards")
            else:
                logger.warning(f"Bulk scan failed, keeping {len(self.session)} cards for retry: {result.error}")
                self._set_status("Bulk scan failed")
            return result
        finally:
            self.gate.release(token)

    # --- Camera & teardown ---

    def set_torch(self, on: bool):
        if self._closed:
            return
        self.camera.set_torch(on)

    def toggle_torch(self) -> bool:
        on = not getattr(self.camera, "torch_on", False)
        self.set_torch(on)
        return on

    def close(self):
        """Releases camera and recognition services once. In-flight results are discarded."""
        if self._closed:
            return
        self._closed = True
        if self._state != S.FINISHED:
            logger.info(f"Pipeline {self._state.value} -> finished (teardown)")
            self._state = S.FINISHED
            self.history.append(S.FINISHED)

        try:
            self.camera.unbind()
        except Exception as e:
            logger.error(f"Error releasing camera: {e}")
        self.recognizer.close()
