"""Exceptions raised by hardware and service adapters.

They never cross the pipeline boundary: the recognition coordinator and the
pipeline controller turn them into tagged outcomes and cycle statuses.
"""

class CardScanError(Exception):
    """Base class for all cardscan errors."""

class CaptureUnavailable(CardScanError):
    """Camera is not bound/ready or failed to deliver a frame."""

class RecognitionError(CardScanError):
    """A barcode decoder or text recognizer failed on a frame."""

class AuthError(CardScanError):
    """Anonymous authentication against the API failed."""
