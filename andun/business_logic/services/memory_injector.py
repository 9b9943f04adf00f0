# andun/business_logic/services/memory_injector.py
import json
from typing import Literal, Optional, Sequence

from andun.models.schemas import StructuredMemory, UploadedDocument

NO_HISTORY_MARKER = "【历史档案】：暂无历史评估记录，这是与该警员的首次评估。不要假设或编造任何过往对话内容。"
NO_REPORT_MARKER = "暂无详细报告"
NO_DOCUMENTS_MARKER = "暂无上传的历史档案"
DOCUMENT_SEPARATOR = "\n\n---\n\n"

_RISK_LABELS = {"low": "低风险", "medium": "中风险", "high": "高风险"}


class MemoryInjector:
    """把结构化记忆和上传档案整理成可注入系统指令的自然语言上下文"""

    @staticmethod
    def build_assessment_context(memory: Optional[StructuredMemory]) -> str:
        """评估智能体只需要简要回顾：上次风险等级和压力来源类别，便于自然地回访"""
        if memory is None:
            return NO_HISTORY_MARKER

        categories = "、".join(s.category for s in memory.stress_sources) or "未记录"
        return (
            "【历史档案】：该警员已有评估记录"
            f"（更新于 {memory.last_updated.strftime('%Y-%m-%d %H:%M')}）。\n"
            f"- 上次风险等级：{_RISK_LABELS[memory.risk_level]}\n"
            f"- 主要压力来源：{categories}\n"
            "请在对话中自然地关心这些方面的近况变化，但不要直接念出档案内容。"
        )

    @staticmethod
    def format_documents(documents: Sequence[UploadedDocument]) -> str:
        if not documents:
            return NO_DOCUMENTS_MARKER
        return DOCUMENT_SEPARATOR.join(f"文件 [{doc.filename}]:\n{doc.content}" for doc in documents)

    @staticmethod
    def build_counseling_context(
            memory: Optional[StructuredMemory],
            documents: Sequence[UploadedDocument]
    ) -> str:
        """疏导智能体需要尽可能完整的信息：完整报告 + 全部上传档案"""
        report = (
            json.dumps(memory.to_json_dict(), ensure_ascii=False, indent=2)
            if memory is not None else NO_REPORT_MARKER
        )
        return (
            f"【最新评估报告数据】：\n{report}\n\n"
            f"【用户上传的历史档案】：\n{MemoryInjector.format_documents(documents)}"
        )

    @staticmethod
    def build_context(
            memory: Optional[StructuredMemory],
            documents: Sequence[UploadedDocument] = (),
            audience: Literal["assessment", "counseling"] = "counseling"
    ) -> str:
        if audience == "assessment":
            return MemoryInjector.build_assessment_context(memory)
        return MemoryInjector.build_counseling_context(memory, documents)
