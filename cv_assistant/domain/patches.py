"""Patch engine: ordered add/remove/replace operations over a resume document.

Paths are JSON Pointers parsed once into a small closed grammar of tokens.
A batch is all-or-nothing: operations run against a deep copy, so the
caller's document is untouched whenever any operation fails.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..errors import PatchError

OPERATIONS = ("add", "remove", "replace")
APPEND_MARKER = "-"
STRING_APPEND_SEPARATOR = ", "

_MISSING = object()
_INDEX_RE = re.compile(r"^(0|[1-9][0-9]*)$")


@dataclass(frozen=True)
class KeyToken:
    key: str


@dataclass(frozen=True)
class IndexToken:
    """Numeric token; addresses a list index, or the key ``raw`` in a mapping."""

    index: int
    raw: str


@dataclass(frozen=True)
class AppendToken:
    pass


PathToken = Union[KeyToken, IndexToken, AppendToken]


@dataclass(frozen=True)
class PatchOperation:
    """One atomic edit instruction."""

    op: str
    path: Tuple[PathToken, ...]
    value: Any = _MISSING

    @property
    def has_value(self) -> bool:
        return self.value is not _MISSING

    @property
    def pointer(self) -> str:
        return format_pointer(self.path)

    @classmethod
    def add(cls, path: str, value: Any) -> "PatchOperation":
        return cls("add", parse_pointer(path), value)

    @classmethod
    def replace(cls, path: str, value: Any) -> "PatchOperation":
        return cls("replace", parse_pointer(path), value)

    @classmethod
    def remove(cls, path: str) -> "PatchOperation":
        return cls("remove", parse_pointer(path))

    @classmethod
    def from_dict(cls, data: Any, index: int = 0) -> "PatchOperation":
        """Build an operation from decoded JSON, raising :class:`PatchError`."""
        if not isinstance(data, Mapping):
            raise PatchError(index, "Patch operation must be an object")

        op = data.get("op")
        if op not in OPERATIONS:
            raise PatchError(index, f"Unknown operation {op!r}")

        try:
            path = parse_pointer(data.get("path"))
        except ValueError as e:
            raise PatchError(index, str(e)) from e

        if op == "remove":
            # value is ignored for remove
            return cls(op, path)
        if "value" not in data:
            raise PatchError(index, f"Operation '{op}' requires a value")
        return cls(op, path, copy.deepcopy(data["value"]))

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"op": self.op, "path": self.pointer}
        if self.has_value:
            payload["value"] = self.value
        return payload


@dataclass
class PatchResult:
    document: Dict[str, Any]
    applied_count: int


# ---------------------------------------------------------------------------
# Pointer grammar
# ---------------------------------------------------------------------------


def parse_pointer(pointer: Any) -> Tuple[PathToken, ...]:
    """Parse an RFC 6901 pointer (``/experience/0/role``) into tokens.

    Raises ``ValueError`` for malformed paths. The root pointer ``""`` is
    rejected: whole-document replacement goes through import, not patches.
    """
    if not isinstance(pointer, str):
        raise ValueError("Path must be a string")
    if not pointer:
        raise ValueError("Path must not be empty")
    if not pointer.startswith("/"):
        raise ValueError(f"Path must start with '/': {pointer!r}")

    tokens: List[PathToken] = []
    raw_tokens = pointer[1:].split("/")
    for position, raw in enumerate(raw_tokens):
        if raw == APPEND_MARKER:
            if position != len(raw_tokens) - 1:
                raise ValueError(f"Append marker '-' is only valid as the last token: {pointer!r}")
            tokens.append(AppendToken())
            continue
        if "~" in raw and re.search(r"~(?![01])", raw):
            raise ValueError(f"Invalid escape sequence in path: {pointer!r}")
        key = raw.replace("~1", "/").replace("~0", "~")
        if _INDEX_RE.match(key):
            tokens.append(IndexToken(int(key), key))
        else:
            tokens.append(KeyToken(key))
    return tuple(tokens)


def format_pointer(tokens: Sequence[PathToken]) -> str:
    parts = []
    for token in tokens:
        if isinstance(token, AppendToken):
            parts.append(APPEND_MARKER)
        elif isinstance(token, IndexToken):
            parts.append(token.raw)
        else:
            parts.append(token.key.replace("~", "~0").replace("/", "~1"))
    return "/" + "/".join(parts)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_patch_list(raw: Any) -> List[PatchOperation]:
    """Decode the ``patches`` array from a completion reply."""
    if not isinstance(raw, list):
        raise PatchError(0, "Patches must be an array")
    return [PatchOperation.from_dict(item, index) for index, item in enumerate(raw)]


def apply_patches(
    doc: Mapping[str, Any],
    patches: Sequence[Union[PatchOperation, Mapping[str, Any]]],
) -> PatchResult:
    """Apply *patches* in order to a deep copy of *doc*.

    Later operations see the effects of earlier ones. The first failing
    operation aborts the batch with a :class:`PatchError` carrying its index.
    """
    working = copy.deepcopy(dict(doc))
    for index, raw in enumerate(patches):
        operation = raw if isinstance(raw, PatchOperation) else PatchOperation.from_dict(raw, index)
        _apply_one(working, operation, index)
    return PatchResult(document=working, applied_count=len(patches))


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------


def _apply_one(doc: Dict[str, Any], operation: PatchOperation, index: int) -> None:
    if operation.op not in OPERATIONS:
        raise PatchError(index, f"Unknown operation {operation.op!r}")
    if not operation.path:
        raise PatchError(index, "Path must not be empty")
    if operation.op in ("add", "replace") and not operation.has_value:
        raise PatchError(index, f"Operation '{operation.op}' requires a value")

    *parents, last = operation.path
    if isinstance(last, AppendToken) and operation.op != "add":
        raise PatchError(index, f"Append marker '-' is only valid for 'add', got '{operation.op}'")

    parent = _resolve(doc, parents, operation, index)
    value = copy.deepcopy(operation.value) if operation.has_value else None

    if isinstance(last, AppendToken) and isinstance(parent, str):
        # Free-text list fields (skills) take "-" as comma-separated append.
        holder = _resolve(doc, parents[:-1], operation, index)
        try:
            text = append_to_text(parent, value)
        except TypeError as e:
            raise PatchError(index, f"{e} at {operation.pointer}") from e
        if isinstance(holder, list):
            holder[parents[-1].index] = text  # type: ignore[union-attr]
        else:
            holder[_mapping_key(parents[-1])] = text
        return

    if operation.op == "add":
        _add(parent, last, value, operation, index)
    elif operation.op == "remove":
        _remove(parent, last, operation, index)
    else:
        _replace(parent, last, value, operation, index)


def _resolve(doc: Any, tokens: Sequence[PathToken], operation: PatchOperation, index: int) -> Any:
    current = doc
    for depth, token in enumerate(tokens):
        child = _child(current, token)
        if child is _MISSING:
            walked = format_pointer(tokens[: depth + 1])
            raise PatchError(index, f"Path {operation.pointer} cannot be resolved: {walked} does not exist")
        current = child
    return current


def _child(container: Any, token: PathToken) -> Any:
    if isinstance(container, dict):
        key = _mapping_key(token)
        if key is None:
            return _MISSING
        return container.get(key, _MISSING)
    if isinstance(container, list):
        if isinstance(token, IndexToken) and token.index < len(container):
            return container[token.index]
    return _MISSING


def _mapping_key(token: PathToken) -> Optional[str]:
    if isinstance(token, KeyToken):
        return token.key
    if isinstance(token, IndexToken):
        return token.raw
    return None


def _add(parent: Any, token: PathToken, value: Any, operation: PatchOperation, index: int) -> None:
    if isinstance(parent, list):
        if isinstance(token, AppendToken):
            parent.append(value)
        elif isinstance(token, IndexToken) and token.index <= len(parent):
            parent.insert(token.index, value)
        elif isinstance(token, IndexToken):
            raise PatchError(
                index, f"Index {token.index} out of range for array of length {len(parent)} at {operation.pointer}"
            )
        else:
            raise PatchError(index, f"Array index expected at {operation.pointer}")
        return

    if isinstance(parent, dict):
        if isinstance(token, AppendToken):
            raise PatchError(index, f"Append marker '-' requires an array or string target at {operation.pointer}")
        parent[_mapping_key(token)] = value
        return

    raise PatchError(index, f"Cannot add into a {type(parent).__name__} value at {operation.pointer}")


def _remove(parent: Any, token: PathToken, operation: PatchOperation, index: int) -> None:
    if _child(parent, token) is _MISSING:
        raise PatchError(index, f"Path {operation.pointer} does not exist")
    if isinstance(parent, list):
        del parent[token.index]  # type: ignore[union-attr]
    else:
        del parent[_mapping_key(token)]


def _replace(parent: Any, token: PathToken, value: Any, operation: PatchOperation, index: int) -> None:
    if _child(parent, token) is _MISSING:
        raise PatchError(index, f"Path {operation.pointer} does not exist")
    if isinstance(parent, list):
        parent[token.index] = value  # type: ignore[union-attr]
    else:
        parent[_mapping_key(token)] = value


def append_to_text(existing: str, value: Any) -> str:
    """Append one entry to a comma-separated free-text field."""
    if not isinstance(value, str):
        raise TypeError("Only string values can be appended to a text field")
    if not existing.strip():
        return value
    return f"{existing.rstrip()}{STRING_APPEND_SEPARATOR}{value}"
