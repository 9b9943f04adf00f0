import json

from andun.business_logic.services.json_utils import extract_json_from_text, parse_json_object
from conftest import REPORT_PAYLOAD


def test_extracts_from_markdown_fence():
    text = '```json\n{"riskLevel": "low"}\n```'
    assert parse_json_object(text) == {"riskLevel": "low"}


def test_extracts_object_surrounded_by_prose():
    text = '好的，以下是报告：\n{"summary": "ok", "nested": {"a": 1}}\n希望对你有帮助。'
    assert parse_json_object(text) == {"summary": "ok", "nested": {"a": 1}}


def test_braces_in_leading_prose_are_skipped():
    text = "说明{注}：\n" + json.dumps(REPORT_PAYLOAD, ensure_ascii=False) + "\n（完）{备注}"
    assert parse_json_object(text) == REPORT_PAYLOAD


def test_fence_stripping_leaves_plain_text_alone():
    assert extract_json_from_text(' {"a": 1} ') == '{"a": 1}'
    assert extract_json_from_text('```\n{"a": 1}\n```') == '{"a": 1}'


def test_invalid_or_empty_returns_none():
    assert parse_json_object("") is None
    assert parse_json_object("   ") is None
    assert parse_json_object("完全没有JSON") is None
    assert parse_json_object('{"a": }') is None


def test_non_object_returns_none():
    assert parse_json_object("[1, 2, 3]") is None
