import json

import pytest
from pydantic import ValidationError

from andun.models.schemas import Message, StressSource, StructuredMemory
from conftest import REPORT_PAYLOAD


@pytest.mark.parametrize("raw, expected", [
    (0, 1),
    (-5, 1),
    (11, 10),
    (7.6, 8),
    ("4", 4),
    (10, 10),
])
def test_severity_is_clamped(raw, expected):
    source = StressSource(category="轮班制", description="夜班", severity=raw)
    assert source.severity == expected


@pytest.mark.parametrize("raw", [float("nan"), float("inf"), True, "高"])
def test_severity_rejects_non_numeric(raw):
    with pytest.raises(ValidationError):
        StressSource(category="轮班制", description="夜班", severity=raw)


def test_memory_accepts_camel_case_and_normalizes_risk_level():
    memory = StructuredMemory.model_validate({**REPORT_PAYLOAD, "riskLevel": " HIGH "})
    assert memory.risk_level == "high"
    assert memory.psychological_status.burnout_level == "轻度"
    assert memory.to_json_dict()["stressSources"][0]["severity"] == 6


def test_memory_json_round_trip_keeps_every_field():
    memory = StructuredMemory.model_validate({
        **REPORT_PAYLOAD,
        "stressSources": [
            {"category": "轮班制", "description": "连续夜班", "severity": 0},
            {"category": "身份认同", "description": "长期卧底", "severity": 15},
        ],
    })
    restored = StructuredMemory.model_validate(json.loads(json.dumps(memory.to_json_dict(), ensure_ascii=False)))

    assert restored == memory
    assert [s.severity for s in restored.stress_sources] == [1, 10]
    assert restored.last_updated == memory.last_updated


def test_memory_rejects_unknown_risk_level():
    with pytest.raises(ValidationError):
        StructuredMemory.model_validate({**REPORT_PAYLOAD, "riskLevel": "critical"})


def test_recommendation_type_is_an_enum():
    payload = dict(REPORT_PAYLOAD)
    payload["recommendations"] = [{"title": "t", "content": "c", "type": "Immediate"}]
    assert StructuredMemory.model_validate(payload).recommendations[0].type == "immediate"

    payload["recommendations"] = [{"title": "t", "content": "c", "type": "urgent"}]
    with pytest.raises(ValidationError):
        StructuredMemory.model_validate(payload)


def test_message_feedback_is_idempotent():
    message = Message(role="assistant", text="试试4-7-8呼吸法。")
    liked = message.with_feedback("positive")

    assert liked.feedback == "positive"
    assert liked.id == message.id
    assert message.feedback == "none"
    assert liked.with_feedback("positive") is liked
    assert liked.with_feedback("negative").feedback == "negative"


def test_message_is_frozen():
    message = Message(role="subject", text="你好")
    with pytest.raises(ValidationError):
        message.text = "改了"
