"""Pure domain logic for resume document validation.

All functions operate on already-decoded JSON values -- no storage I/O.
"""

from __future__ import annotations

import copy
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping

REQUIRED_FIELDS = ("name", "title", "contact", "education", "skills", "experience", "projects")
CONTACT_FIELDS = ("email", "phone", "github")
EDUCATION_FIELDS = ("institution", "degree", "duration", "details")
SKILL_FIELDS = ("languages", "frameworks", "databases", "sourceManagement", "english", "others")
EXPERIENCE_FIELDS = ("role", "company", "duration", "responsibilities", "techStack")
PROJECT_FIELDS = ("name", "isPersonal", "responsibilities", "techStack")
CHAT_ROLES = ("user", "assistant", "system")

MAX_PROJECT_NAME_LENGTH = 100

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_INVALID_NAME_CHARS_RE = re.compile(r'[<>:"/\\|?*]')


@dataclass
class ValidationResult:
    """Structured result from document validation."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)


_DEFAULT_DOCUMENT: Dict[str, Any] = {
    "name": "Your Name",
    "title": "Software Engineer",
    "contact": {
        "email": "you@example.com",
        "phone": "+1 555 0100",
        "github": "github.com/your-handle",
    },
    "education": [
        {
            "institution": "State University",
            "degree": "B.Sc. Computer Science",
            "duration": "2015 - 2019",
            "details": "",
        }
    ],
    "skills": {
        "languages": "Python, JavaScript",
        "frameworks": "FastAPI, React",
        "databases": "PostgreSQL",
        "sourceManagement": "Git",
        "english": "Fluent",
        "others": "",
    },
    "experience": [
        {
            "role": "Software Engineer",
            "company": "Acme Corp",
            "duration": "2019 - Present",
            "techStack": "Python, PostgreSQL",
            "responsibilities": ["Built and maintained backend services"],
        }
    ],
    "projects": [
        {
            "name": "Side Project",
            "techStack": "Python",
            "isPersonal": True,
            "responsibilities": ["Designed and shipped the first release"],
        }
    ],
}


def default_resume_document() -> Dict[str, Any]:
    """Return a fresh copy of the template used for new projects."""
    return copy.deepcopy(_DEFAULT_DOCUMENT)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def validate_resume_document(doc: Any) -> ValidationResult:
    """Validate *doc* against the resume schema.

    Never raises. Every violation is collected so a single call reports the
    complete defect list, in the order: top-level fields, contact,
    education, skills, experience, projects.
    """
    if not isinstance(doc, Mapping):
        return ValidationResult(is_valid=False, errors=["Resume data must be an object"])

    errors: List[str] = []
    for name in REQUIRED_FIELDS:
        if name not in doc:
            errors.append(f"Missing required field: {name}")

    if "contact" in doc:
        errors.extend(_check_contact(doc["contact"]))
    if "education" in doc:
        errors.extend(_check_records(doc["education"], "Education", EDUCATION_FIELDS))
    if "skills" in doc:
        errors.extend(_check_skills(doc["skills"]))
    if "experience" in doc:
        errors.extend(_check_records(doc["experience"], "Experience", EXPERIENCE_FIELDS))
    if "projects" in doc:
        errors.extend(_check_records(doc["projects"], "Project", PROJECT_FIELDS))

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_chat_history(messages: Any) -> ValidationResult:
    """Check a transcript: list of ``{role, content, timestamp?}`` mappings."""
    if not isinstance(messages, list):
        return ValidationResult(is_valid=False, errors=["Chat history must be an array"])

    errors: List[str] = []
    for index, message in enumerate(messages):
        if not isinstance(message, Mapping):
            errors.append(f"Chat message {index} must be an object")
            continue
        role = message.get("role")
        if "role" not in message:
            errors.append(f"Chat message {index} missing required field: role")
        elif not isinstance(role, str):
            errors.append(f"Chat message {index} role must be a string")
        elif role not in CHAT_ROLES:
            errors.append(f"Chat message {index} role must be 'user', 'assistant', or 'system'")

        if "content" not in message:
            errors.append(f"Chat message {index} missing required field: content")
        elif not isinstance(message["content"], str):
            errors.append(f"Chat message {index} content must be a string")

        if "timestamp" in message and not isinstance(message["timestamp"], str):
            errors.append(f"Chat message {index} timestamp must be a string")

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_resume_history(entries: Any) -> ValidationResult:
    """Check a stored history sequence, including the single-latest invariant."""
    if not isinstance(entries, list):
        return ValidationResult(is_valid=False, errors=["Resume history must be an array"])

    errors: List[str] = []
    latest_count = 0
    for index, entry in enumerate(entries):
        if not isinstance(entry, Mapping):
            errors.append(f"Resume history entry {index} must be an object")
            continue
        for name in ("snapshot", "timestamp", "message", "isLatest"):
            if name not in entry:
                errors.append(f"Resume history entry {index} missing required field: {name}")
        if "snapshot" in entry and not isinstance(entry["snapshot"], Mapping):
            errors.append(f"Resume history entry {index} snapshot must be an object")
        if "message" in entry and not isinstance(entry["message"], str):
            errors.append(f"Resume history entry {index} field message must be a string")
        if "isLatest" in entry:
            if not isinstance(entry["isLatest"], bool):
                errors.append(f"Resume history entry {index} isLatest must be a boolean")
            elif entry["isLatest"]:
                latest_count += 1
        if "timestamp" in entry:
            timestamp = entry["timestamp"]
            if not isinstance(timestamp, str):
                errors.append(f"Resume history entry {index} field timestamp must be a string")
            elif not _is_iso_timestamp(timestamp):
                errors.append(f"Resume history entry {index} has invalid timestamp format")

    if latest_count > 1:
        errors.append("Multiple resume history entries marked as latest")
    if entries and latest_count == 0:
        errors.append("Resume history must have at least one entry marked as latest")

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_project_name(name: Any) -> ValidationResult:
    """Check a project display name (uniqueness is checked by the store)."""
    if not isinstance(name, str):
        return ValidationResult(is_valid=False, errors=["Project name must be a string"])

    errors: List[str] = []
    trimmed = name.strip()
    if not trimmed:
        errors.append("Project name cannot be empty")
    if len(trimmed) > MAX_PROJECT_NAME_LENGTH:
        errors.append(f"Project name cannot exceed {MAX_PROJECT_NAME_LENGTH} characters")
    if _INVALID_NAME_CHARS_RE.search(trimmed):
        errors.append("Project name contains invalid characters")
    return ValidationResult(is_valid=not errors, errors=errors)


# ---------------------------------------------------------------------------
# Report formatting
# ---------------------------------------------------------------------------


def format_validation_report(title: str, result: ValidationResult) -> str:
    """Render a :class:`ValidationResult` as a human-readable report."""
    status = "PASS" if result.is_valid else "FAIL"
    lines = [f"## Validation: {status} -- {title}", ""]
    if result.errors:
        lines.append("### Errors")
        for error in result.errors:
            lines.append(f"- {error}")
    else:
        lines.append("No issues found. Resume data is well-formed.")
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Private checks
# ---------------------------------------------------------------------------


def _check_contact(contact: Any) -> List[str]:
    if not isinstance(contact, Mapping):
        return ["Contact must be an object"]

    errors: List[str] = []
    for name in CONTACT_FIELDS:
        if name not in contact:
            errors.append(f"Missing required contact field: {name}")
        elif not isinstance(contact[name], str):
            errors.append(f"Contact field {name} must be a string")
        elif name in ("email", "phone") and not contact[name].strip():
            errors.append(f"Contact field {name} cannot be empty")

    email = contact.get("email")
    if isinstance(email, str) and email.strip() and not _EMAIL_RE.match(email):
        errors.append("Invalid email format")
    return errors


def _check_skills(skills: Any) -> List[str]:
    if not isinstance(skills, Mapping):
        return ["Skills must be an object"]

    errors: List[str] = []
    for name in SKILL_FIELDS:
        if name not in skills:
            errors.append(f"Missing required skills field: {name}")
        elif not isinstance(skills[name], str):
            errors.append(f"Skills field {name} must be a string")
    return errors


def _check_records(items: Any, label: str, required: tuple) -> List[str]:
    if not isinstance(items, list):
        plural = "Projects" if label == "Project" else label
        return [f"{plural} must be an array"]

    errors: List[str] = []
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            errors.append(f"{label} item {index} must be an object")
            continue
        for name in required:
            if name not in item:
                errors.append(f"{label} item {index} missing required field: {name}")
                continue
            value = item[name]
            if name == "responsibilities":
                if not isinstance(value, list):
                    errors.append(f"{label} item {index} responsibilities must be an array")
                elif not all(isinstance(line, str) for line in value):
                    errors.append(f"{label} item {index} responsibilities must be array of strings")
            elif name == "isPersonal":
                if not isinstance(value, bool):
                    errors.append(f"{label} item {index} isPersonal must be a boolean")
            elif not isinstance(value, str):
                errors.append(f"{label} item {index} field {name} must be a string")
    return errors


def _is_iso_timestamp(value: str) -> bool:
    try:
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True
