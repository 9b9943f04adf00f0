import json

from andun.business_logic.services.memory_injector import (
    DOCUMENT_SEPARATOR,
    NO_DOCUMENTS_MARKER,
    NO_HISTORY_MARKER,
    NO_REPORT_MARKER,
    MemoryInjector,
)
from andun.models.schemas import StructuredMemory, UploadedDocument
from conftest import REPORT_PAYLOAD


def _memory():
    return StructuredMemory.model_validate(REPORT_PAYLOAD)


def test_assessment_context_without_memory_forbids_invented_history():
    assert MemoryInjector.build_assessment_context(None) == NO_HISTORY_MARKER


def test_assessment_context_is_a_brief_recap():
    context = MemoryInjector.build_assessment_context(_memory())
    assert "中风险" in context
    assert "轮班制" in context
    assert "睡眠障碍持续两周以上" not in context


def test_counseling_context_carries_full_report_and_documents():
    docs = [
        UploadedDocument(filename="体检.txt", content="血压偏高"),
        UploadedDocument(filename="量表.txt", content="PHQ-9: 8"),
    ]
    context = MemoryInjector.build_counseling_context(_memory(), docs)

    report = json.dumps(_memory().to_json_dict(), ensure_ascii=False, indent=2)
    assert report.split("\n")[1] in context
    assert "睡眠障碍持续两周以上" in context
    assert "文件 [体检.txt]:\n血压偏高" + DOCUMENT_SEPARATOR + "文件 [量表.txt]:\nPHQ-9: 8" in context


def test_counseling_context_markers_when_empty():
    context = MemoryInjector.build_context(None, [])
    assert NO_REPORT_MARKER in context
    assert NO_DOCUMENTS_MARKER in context


def test_build_context_dispatches_on_audience():
    assert MemoryInjector.build_context(None, audience="assessment") == NO_HISTORY_MARKER
