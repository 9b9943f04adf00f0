import asyncio

import pytest

from andun.business_logic.agents import AssessmentAgent, CounselingAgent
from andun.core.exceptions import LLMServiceError, PipelineBusyError
from andun.models.schemas import Message
from conftest import FakeLLMService


def test_scripted_messages_name_the_agent():
    llm = FakeLLMService()
    welcome = AssessmentAgent(llm, "心语").welcome_message()
    greeting = CounselingAgent(llm, "蓝盾").greeting_message()

    assert welcome.role == "assistant" and "心语" in welcome.text
    assert greeting.role == "assistant" and "蓝盾" in greeting.text


async def test_send_returns_reply_and_does_not_touch_log():
    llm = FakeLLMService("听起来夜班很辛苦。")
    agent = AssessmentAgent(llm, "心语")
    log = [Message(role="assistant", text="今天工作累吗？")]

    reply = await agent.send("u1", log, "  夜班太多了  ", "【历史档案】")

    assert reply == "听起来夜班很辛苦。"
    assert len(log) == 1
    call = llm.calls[0]
    assert call["new_turn"] == "夜班太多了"
    assert call["history"] == log
    assert call["temperature"] == 0.5
    assert "心语" in call["system_instruction"]
    assert "【历史档案】" in call["system_instruction"]
    assert not agent.is_busy("u1")


async def test_backend_failure_yields_fallback():
    agent = AssessmentAgent(FakeLLMService(LLMServiceError("503")), "心语")
    assert await agent.send("u1", [], "你好", "") == "系统连接稍微有点不稳定，我们刚才聊到哪了？"

    agent = CounselingAgent(FakeLLMService(RuntimeError("boom")), "蓝盾")
    assert await agent.send("u1", [], "你好", "") == "蓝盾正在深入思考，请稍等..."
    assert not agent.is_busy("u1")


async def test_timeout_yields_fallback():
    never = asyncio.Event()
    agent = CounselingAgent(FakeLLMService(never), "蓝盾", timeout_seconds=0.05)

    assert await agent.send("u1", [], "你好", "") == agent.fallback_reply
    assert not agent.is_busy("u1")


async def test_empty_input_is_rejected_without_backend_call():
    llm = FakeLLMService()
    agent = AssessmentAgent(llm, "心语")
    with pytest.raises(ValueError):
        await agent.send("u1", [], "   ", "")
    assert llm.calls == []


async def test_second_send_while_busy_is_rejected():
    gate = asyncio.Event()
    llm = FakeLLMService(gate, "给u2的回复", "第一条回复")
    agent = AssessmentAgent(llm, "心语")

    first = asyncio.create_task(agent.send("u1", [], "第一句", ""))
    while not llm.calls:
        await asyncio.sleep(0)
    assert agent.is_busy("u1")

    with pytest.raises(PipelineBusyError):
        await agent.send("u1", [], "第二句", "")
    # 不同对象互不影响
    assert await agent.send("u2", [], "你好", "") == "给u2的回复"

    gate.set()
    assert await first == "第一条回复"
    assert len(llm.calls) == 2
    assert not agent.is_busy("u1")


async def test_derived_agent_uses_new_backend_and_shares_busy_flag():
    base = CounselingAgent(FakeLLMService(), "蓝盾", timeout_seconds=5)
    llm = FakeLLMService("换了模型")
    derived = base.derive(llm, "盾哥")

    assert isinstance(derived, CounselingAgent)
    assert derived.timeout_seconds == 5
    assert "盾哥" in derived.greeting_message().text

    with base.reserve("u2"):
        assert derived.is_busy("u2")
        with pytest.raises(PipelineBusyError):
            await derived.send("u2", [], "你好", "")
    assert await derived.send("u2", [], "你好", "") == "换了模型"
