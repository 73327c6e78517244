import logging
from typing import List, Tuple

from pydantic import ValidationError

from cardscan.core.models import BulkScanResponse
from cardscan.services.api_client import ApiClient
from cardscan.services.scanner.models import (
    BatchResult, ScanCandidate, ScanOutcome, TRANSPORT_ERROR, Unresolved
)
from cardscan.services.scanner.resolver import outcome_from_response

logger = logging.getLogger(__name__)

MISSING_RESULT = "no result"


class ScanSession:
    """
    Batch mode accumulator.

    Candidates are appended in scan order once they resolved individually and
    are sent together by ``submit()`` in one bulk request. The session does not
    clear itself: the owner decides when the batch is over.
    """

    def __init__(self, client: ApiClient):
        self.client = client
        self._items: List[ScanCandidate] = []

    def append(self, candidate: ScanCandidate):
        self._items.append(candidate)
        logger.info(f"Batch item {len(self._items)}: {candidate.describe()}")

    @property
    def items(self) -> Tuple[ScanCandidate, ...]:
        return tuple(self._items)

    def is_empty(self) -> bool:
        return not self._items

    def clear(self):
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    async def submit(self) -> BatchResult:
        items = list(self._items)
        if not items:
            logger.info("Empty batch, nothing to submit")
            return BatchResult(ok=True)

        logger.info(f"Submitting batch of {len(items)} scans")
        reply = await self.client.scan_bulk([c.to_request() for c in items])

        if reply.transport_failed:
            return BatchResult(ok=False, total_submitted=len(items), error=f"{TRANSPORT_ERROR}: {reply.error}")
        if not reply.ok:
            return BatchResult(ok=False, total_submitted=len(items), error=f"server error {reply.status}")

        try:
            response = BulkScanResponse.model_validate(reply.data)
        except ValidationError as e:
            logger.error(f"Malformed bulk scan response: {e}")
            return BatchResult(ok=False, total_submitted=len(items), error="malformed response")

        results = self._reconcile(items, response)
        logger.info(f"Batch session {response.session_id}: {response.successful_scans}/{len(items)} successful")
        return BatchResult(
            ok=True,
            total_submitted=len(items),
            successful=response.successful_scans,
            failed=response.failed_scans,
            results=results,
            session_id=response.session_id,
        )

    def _reconcile(self, items: List[ScanCandidate], response: BulkScanResponse) -> List[ScanOutcome]:
        """One outcome per submitted item, in submission order."""
        raw = [r.model_dump() for r in response.results]
        if len(raw) != len(items):
            logger.warning(f"Bulk response has {len(raw)} results for {len(items)} scans")

        results: List[ScanOutcome] = []
        for index in range(len(items)):
            if index < len(raw):
                results.append(outcome_from_response(raw[index]))
            else:
                results.append(Unresolved(MISSING_RESULT))
        return results
