"""Tests for completion reply decoding."""

from __future__ import annotations

import pytest

from cv_assistant.core.replies import (
    FALLBACK_REPLY,
    parse_job_match_reply,
    parse_json_object,
    parse_patch_reply,
    strip_code_fences,
)
from cv_assistant.errors import UpstreamError


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_parse_json_object_rejects_non_objects():
    with pytest.raises(UpstreamError):
        parse_json_object("[1, 2]")
    with pytest.raises(UpstreamError):
        parse_json_object("Sure! Here you go.")
    with pytest.raises(UpstreamError):
        parse_json_object("")


def test_parse_patch_reply_defaults():
    reply = parse_patch_reply('{"message": "   "}')
    assert reply.patches == []
    assert reply.message == FALLBACK_REPLY


def test_parse_job_match_reply_trims_and_validates():
    result = parse_job_match_reply('{"matched": [" Python ", ""], "missing": ["Go"]}')
    assert result.matched == ["Python"]
    assert result.missing == ["Go"]

    with pytest.raises(UpstreamError):
        parse_job_match_reply('{"matched": "Python", "missing": []}')
