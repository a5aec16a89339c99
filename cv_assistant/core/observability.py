"""Observability for conversation turns - logging and per-session stats."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class TurnEvent:
    """A single event recorded while handling a turn."""

    timestamp: datetime
    event_type: str  # "llm_request", "patch_applied", "commit", "error"
    data: Dict[str, Any]
    duration_ms: Optional[float] = None
    tokens_used: Optional[int] = None


class TurnObserver:
    """
    Observability layer for conversation turns.

    Collects events and writes them to the ``cv_assistant`` logger.
    """

    def __init__(self, verbose: bool = False):
        self.events: List[TurnEvent] = []
        self.logger = logging.getLogger("cv_assistant")
        self.verbose = verbose
        self._setup_logging()

    def _setup_logging(self):
        """Configure logging format and handlers."""
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%Y-%m-%d %H:%M:%S"
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)
        self.logger.setLevel(logging.INFO if self.verbose else logging.WARNING)

    def log_llm_request(
        self,
        project_id: str,
        model: str,
        duration_ms: float,
        tokens: Optional[int] = None,
        success: bool = True,
    ):
        event = TurnEvent(
            timestamp=datetime.now(),
            event_type="llm_request",
            data={"project_id": project_id, "model": model, "success": success},
            duration_ms=duration_ms,
            tokens_used=tokens,
        )
        self.events.append(event)
        status = "ok" if success else "failed"
        self.logger.info(
            "[%s] LLM %s | %s | %s tokens | %.2fms", project_id, model, status, tokens or 0, duration_ms
        )

    def log_patch_batch(self, project_id: str, applied: int, duration_ms: float):
        event = TurnEvent(
            timestamp=datetime.now(),
            event_type="patch_applied",
            data={"project_id": project_id, "applied": applied},
            duration_ms=duration_ms,
        )
        self.events.append(event)
        self.logger.info("[%s] Applied %d patch operation(s) (%.2fms)", project_id, applied, duration_ms)

    def log_commit(self, project_id: str, timestamp: str, message: str):
        event = TurnEvent(
            timestamp=datetime.now(),
            event_type="commit",
            data={"project_id": project_id, "history_timestamp": timestamp, "message": message[:100]},
        )
        self.events.append(event)
        self.logger.info("[%s] Committed version %s", project_id, timestamp)

    def log_error(
        self,
        error_type: str,
        message: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        """
        Log an error event.

        Args:
            error_type: Error code (e.g. "PATCH_FAILED", "UPSTREAM_ERROR")
            message: Error message
            context: Additional context about the error
        """
        event = TurnEvent(
            timestamp=datetime.now(),
            event_type="error",
            data={"error_type": error_type, "message": message, "context": context or {}},
        )
        self.events.append(event)
        self.logger.error("Error (%s): %s", error_type, message)

    def get_session_stats(self) -> Dict[str, Any]:
        """Aggregated statistics for the current session."""
        llm_requests = [e for e in self.events if e.event_type == "llm_request"]
        return {
            "event_count": len(self.events),
            "llm_requests": len(llm_requests),
            "commits": sum(1 for e in self.events if e.event_type == "commit"),
            "errors": sum(1 for e in self.events if e.event_type == "error"),
            "total_tokens": sum(e.tokens_used or 0 for e in self.events),
            "total_llm_ms": sum(e.duration_ms or 0 for e in llm_requests),
        }

    def clear(self):
        self.events.clear()
