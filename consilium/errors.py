"""Caller-facing errors shared by the dispatcher, synthesizer and engine."""
from __future__ import annotations


class InvalidRequestError(ValueError):
    """Raised for a malformed request: bad shape, unknown strategy, duplicate models."""
    pass


class EmptyResponseSetError(ValueError):
    """Raised only by the opt-in `synthesis.require_responses` guard.

    Nothing in the analysis or research path raises it; an empty panel
    synthesizes to a zero-confidence result.
    """
    pass
