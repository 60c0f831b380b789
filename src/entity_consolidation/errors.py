"""Error taxonomy for detection and merge operations.

Every error carries a machine-readable ``code``, a ``retryable`` flag and a
``details`` dict so callers can re-run detection or retry without parsing
messages.
"""

from __future__ import annotations

from typing import Any


class ConsolidationError(Exception):
    """Base class for all domain errors raised by the engine."""

    code = "consolidation_error"
    retryable = False

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class ValidationError(ConsolidationError):
    """Malformed request: fewer than two members, survivor outside the group, etc.

    Never retryable as-is.
    """

    code = "validation_error"


class StaleGroupError(ConsolidationError):
    """A group member is already retired; the group must be recomputed."""

    code = "stale_group"

    def __init__(self, message: str, *, retired_ids: list[int]) -> None:
        super().__init__(message, retired_ids=retired_ids, action="redetect")
        self.retired_ids = retired_ids


class ConcurrencyError(ConsolidationError):
    """Lock or version conflict with another in-flight merge."""

    code = "concurrency_conflict"
    retryable = True


class PartialDependencyFailure(ConsolidationError):
    """A dependent-relation collaborator failed while repointing.

    The merge transaction is rolled back before this reaches the caller.
    """

    code = "dependency_failure"

    def __init__(self, message: str, *, collaborator: str) -> None:
        super().__init__(message, collaborator=collaborator)
        self.collaborator = collaborator


class NotFoundError(ConsolidationError):
    """Unknown entity id, or a redirect chain that ends nowhere."""

    code = "not_found"

    def __init__(self, message: str, *, entity_id: int) -> None:
        super().__init__(message, entity_id=entity_id)
        self.entity_id = entity_id


class DetectionTimeoutError(ConsolidationError):
    """Detection did not finish within the configured bound."""

    code = "detection_timeout"
    retryable = True
