"""Decoding of structured completion replies."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..errors import UpstreamError

_FENCE_RE = re.compile(r"^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$", re.DOTALL)

FALLBACK_REPLY = "An unexpected response format was received."


@dataclass
class PatchReply:
    patches: Any
    message: str


@dataclass
class JobMatchResult:
    matched: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)


def strip_code_fences(text: str) -> str:
    """Remove an optional surrounding ```json ... ``` fence."""
    match = _FENCE_RE.match(text)
    return match.group(1) if match else text.strip()


def parse_json_object(text: str) -> Dict[str, Any]:
    """Parse a reply as one JSON object; anything else is an :class:`UpstreamError`."""
    body = strip_code_fences(text or "")
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        raise UpstreamError(
            f"The completion service returned a reply that is not valid JSON: {e}",
            {"reply": (text or "")[:500]},
        ) from e
    if not isinstance(data, dict):
        raise UpstreamError("The completion service reply must be a JSON object", {"reply": (text or "")[:500]})
    return data


def parse_patch_reply(text: str) -> PatchReply:
    data = parse_json_object(text)
    message = data.get("message")
    if not isinstance(message, str) or not message.strip():
        message = FALLBACK_REPLY
    return PatchReply(patches=data.get("patches", []), message=message)


def parse_job_match_reply(text: str) -> JobMatchResult:
    data = parse_json_object(text)
    result = JobMatchResult()
    for name in ("matched", "missing"):
        values = data.get(name, [])
        if not isinstance(values, list) or not all(isinstance(v, str) for v in values):
            raise UpstreamError(f"Job match reply field '{name}' must be an array of strings")
        setattr(result, name, [v.strip() for v in values if v.strip()])
    return result
