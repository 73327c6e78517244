import logging
from typing import Any, Optional

from pydantic import ValidationError

from cardscan.core.models import ErrorResponse, ScanResponse
from cardscan.services.api_client import ApiClient
from cardscan.services.scanner.models import (
    NOT_FOUND, TRANSPORT_ERROR, Resolved, ScanCandidate, ScanOutcome, Unresolved
)

logger = logging.getLogger(__name__)


def outcome_from_response(data: Any) -> ScanOutcome:
    """Maps one scan response body (single or bulk item) to an outcome."""
    if not isinstance(data, dict):
        return Unresolved(NOT_FOUND)
    try:
        response = ScanResponse.model_validate(data)
    except ValidationError as e:
        logger.warning(f"Malformed scan response: {e}")
        return Unresolved(NOT_FOUND)

    if response.success and response.card is not None:
        return Resolved(response.card)
    return Unresolved(NOT_FOUND, detail=response.error)


def error_detail(data: Any) -> Optional[str]:
    """Human readable text of an error body, or None when the body is not one."""
    try:
        error = ErrorResponse.model_validate(data)
    except ValidationError:
        return None
    return error.message or error.error


class ScanResolver:
    """Resolves one candidate with a single call to the scan endpoint. No retries."""

    def __init__(self, client: ApiClient):
        self.client = client

    async def resolve(self, candidate: ScanCandidate) -> ScanOutcome:
        logger.info(f"Resolving {candidate.kind.value} candidate: {candidate.describe()}")
        reply = await self.client.scan_card(candidate.to_request())

        if reply.transport_failed:
            return Unresolved(TRANSPORT_ERROR, detail=reply.error)
        if not reply.ok:
            detail = error_detail(reply.data)
            return Unresolved(f"server error {reply.status}", detail=detail, status=reply.status)

        outcome = outcome_from_response(reply.data)
        if isinstance(outcome, Resolved):
            logger.info(f"Resolved: {outcome.card.name} ({outcome.card.set_code} #{outcome.card.collector_number})")
        else:
            logger.info(f"Card not found: {candidate.describe()}")
        return outcome
