"""Error taxonomy shared by the domain, storage and orchestration layers."""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class CVAssistantError(Exception):
    """Base class for recoverable application errors."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(CVAssistantError):
    """Document (or input) failed schema checks. Blocks the commit only."""

    code = "VALIDATION_FAILED"

    def __init__(self, message: str, errors: Optional[List[str]] = None) -> None:
        self.errors = list(errors or [])
        super().__init__(message, {"errors": self.errors})


class PatchError(CVAssistantError):
    """A patch operation could not be applied; the whole batch is rejected."""

    code = "PATCH_FAILED"

    def __init__(self, index: int, reason: str) -> None:
        self.index = index
        self.reason = reason
        super().__init__(f"Patch {index} failed: {reason}", {"index": index, "reason": reason})


class NotFoundError(CVAssistantError):
    code = "NOT_FOUND"


class DuplicateNameError(CVAssistantError):
    code = "DUPLICATE_NAME"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__("A project with this name already exists", {"name": name})


class CredentialMissingError(CVAssistantError):
    code = "CREDENTIAL_MISSING"


class UpstreamError(CVAssistantError):
    """Completion service unreachable, rate limited, or returned unparseable content."""

    code = "UPSTREAM_ERROR"


class StorageError(CVAssistantError):
    code = "STORAGE_ERROR"


class TurnInProgressError(CVAssistantError):
    code = "TURN_IN_PROGRESS"
