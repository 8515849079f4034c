"""
Errors raised by the importer.

Lenient conditions (unit mismatch, unknown linkId, malformed extensions) are
handled where they are detected and never raise. Only the loss of reference
data needed by the form, a failed answer-set resolution, is surfaced.
"""
from typing import Optional


class SDCImportError(Exception):
    """Base class for importer errors."""


class AnswerSetLoadError(SDCImportError):
    """An answer value set could not be resolved for one item."""

    def __init__(self, key: str, value_set: str, reason: Optional[str] = None):
        self.key = key
        self.value_set = value_set
        self.reason = reason
        message = f"Unable to load ValueSet {value_set}"
        if key != value_set:
            message += f" from {key}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
