import asyncio
import json

import pytest

from andun.business_logic.agents import AssessmentAgent, CounselingAgent, ReportSynthesizer
from andun.business_logic.controllers import SessionController
from andun.business_logic.services.llm_service import LLMService
from andun.core.config import Settings
from andun.data_access.repositories.identity_repository import IdentityRepository
from andun.data_access.repositories.subject_repository import SubjectRepository


REPORT_PAYLOAD = {
    "summary": "近期夜班频繁，存在一定程度的睡眠问题。",
    "stressSources": [
        {"category": "轮班制", "description": "连续夜班导致作息紊乱", "severity": 6},
    ],
    "psychologicalStatus": {
        "emotionalStability": "基本稳定",
        "burnoutLevel": "轻度",
        "socialSupport": "家庭支持良好",
    },
    "riskLevel": "medium",
    "riskAnalysis": "睡眠障碍持续两周以上。",
    "recommendations": [
        {"title": "规律作息", "content": "下班后固定时间入睡。", "type": "lifestyle"},
    ],
}


class FakeLLMService(LLMService):
    """按顺序返回预设回复；回复为异常时抛出，为 asyncio.Event 时等待其被设置后返回下一个回复"""

    provider = "fake"
    model_name = "fake-model"

    def __init__(self, *replies, default="好的，我在听。"):
        self.replies = list(replies)
        self.default = default
        self.calls = []

    def queue(self, *replies):
        self.replies.extend(replies)

    async def complete(self, history, new_turn, system_instruction, temperature, json_mode=False):
        self.calls.append({
            "history": list(history),
            "new_turn": new_turn,
            "system_instruction": system_instruction,
            "temperature": temperature,
            "json_mode": json_mode,
        })
        reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, asyncio.Event):
            await reply.wait()
            reply = self.replies.pop(0) if self.replies else self.default
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture
def report_json():
    return json.dumps(REPORT_PAYLOAD, ensure_ascii=False)


@pytest.fixture
def settings():
    return Settings(_env_file=None, SEED_DEMO_DATA=False, LLM_TIMEOUT_SECONDS=1.0)


@pytest.fixture
def fake_llm():
    return FakeLLMService()


@pytest.fixture
def subject_repository():
    return SubjectRepository()


@pytest.fixture
def controller(fake_llm, subject_repository, settings):
    return SessionController(
        subject_repository=subject_repository,
        identity_repository=IdentityRepository(),
        assessment_agent=AssessmentAgent(fake_llm, settings.ASSESSMENT_AGENT_NAME, settings.LLM_TIMEOUT_SECONDS),
        counseling_agent=CounselingAgent(fake_llm, settings.COUNSELING_AGENT_NAME, settings.LLM_TIMEOUT_SECONDS),
        report_synthesizer=ReportSynthesizer(fake_llm, settings.LLM_TIMEOUT_SECONDS, settings.REFINE_WINDOW),
        settings=settings,
    )
