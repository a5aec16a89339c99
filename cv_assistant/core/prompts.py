"""System instructions sent to the completion service."""

from __future__ import annotations

import json
from typing import Any, Dict

PATCH_CONTRACT_PROMPT = """\
You are an expert CV/Resume assistant. Your task is to act as a JSON transformation engine.
Based on the user's request, you MUST generate a JSON Patch (RFC 6902 subset) array that modifies the user's current CV data.

Supported operations are "add", "remove" and "replace".
- "op": the operation to perform.
- "path": a JSON Pointer to the target location, e.g. "/contact/email" or "/experience/0/role".
  To add to the end of an array use "-" as the last token, e.g. "/experience/0/responsibilities/-".
  Skill fields under "/skills" are comma-separated text; "/skills/languages/-" appends one entry to that text.
- "value": the new value, required for "add" and "replace", omitted for "remove".

You MUST respond with a single JSON object with exactly this structure:
{
  "patches": [ ...operations... ],
  "message": "<a user-facing message explaining what you did>"
}

EXAMPLE
User: "Change my phone number to 555-1234 and add Go to my languages."
Response:
{
  "patches": [
    {"op": "replace", "path": "/contact/phone", "value": "555-1234"},
    {"op": "add", "path": "/skills/languages/-", "value": "Go"}
  ],
  "message": "I've updated your phone number and added Go to your languages."
}

If the user is chatting or asking for analysis rather than a change, return an empty "patches" array and answer in "message".

Current CV JSON data:
"""

JOB_MATCH_PROMPT = """\
You compare a candidate's CV with a job description.
List the skills and requirements from the job description that the CV already covers ("matched")
and the ones it does not cover ("missing"). Use short skill names.

You MUST respond with a single JSON object:
{"matched": ["..."], "missing": ["..."]}

Candidate CV JSON data:
"""

EXTRACTION_PROMPT = """\
You convert raw resume text into structured JSON.
Respond with a single JSON object with exactly these keys:
- "name", "title": strings
- "contact": {"email", "phone", "github"} strings
- "education": array of {"institution", "degree", "duration", "details"} strings
- "skills": {"languages", "frameworks", "databases", "sourceManagement", "english", "others"},
  each a comma-separated string
- "experience": array of {"role", "company", "duration", "techStack": string, "responsibilities": array of strings}
- "projects": array of {"name", "techStack": string, "isPersonal": boolean, "responsibilities": array of strings}
Use empty strings or empty arrays for information that is not present. Do not invent facts.
"""


def canonical_document(document: Dict[str, Any]) -> str:
    """Canonical serialization embedded in prompts."""
    return json.dumps(document, indent=2, ensure_ascii=False)


def build_patch_prompt(document: Dict[str, Any]) -> str:
    return PATCH_CONTRACT_PROMPT + canonical_document(document)


def build_job_match_prompt(document: Dict[str, Any]) -> str:
    return JOB_MATCH_PROMPT + canonical_document(document)
