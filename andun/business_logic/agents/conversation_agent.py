# andun/business_logic/agents/conversation_agent.py
import asyncio
from contextlib import contextmanager
from typing import Iterator, Sequence, Set

from andun.core.exceptions import PipelineBusyError
from andun.models.schemas import Message, SubjectRecord
from ..services.llm_service import LLMService
from ..services.prompt_loader import PromptLoader
from ..services.logger import logger


class ConversationAgent:
    """
    对话智能体基类

    一次 send 就是一次纯粹的请求/响应：不修改传入的对话记录，
    由调用方负责把用户消息和助手回复写回档案。
    """

    agent_type: str = ""
    temperature: float = 0.5

    def __init__(self, llm_service: LLMService, agent_name: str, timeout_seconds: float = 60.0):
        """
        Args:
            llm_service: 模型服务
            agent_name: 智能体对用户展示的名字
            timeout_seconds: 单次模型调用的超时时间，超时按失败处理
        """
        self.llm_service = llm_service
        self.agent_name = agent_name
        self.timeout_seconds = timeout_seconds
        # 正在等待模型回复的会话
        self._busy: Set[str] = set()

        # 加载提示词模板
        self.prompts = PromptLoader.load_prompts(self.agent_type)
        if not self.prompts:
            logger.warning(f"找不到{self.agent_type}智能体提示词配置")

    def is_busy(self, session_key: str) -> bool:
        return session_key in self._busy

    def derive(self, llm_service: LLMService, agent_name: str) -> "ConversationAgent":
        """同类型的新实例，换用新的模型服务和名字；与原实例共享占用标记"""
        agent = type(self)(llm_service, agent_name, self.timeout_seconds)
        agent._busy = self._busy
        return agent

    @property
    def fallback_reply(self) -> str:
        """模型不可用时的兜底回复"""
        return PromptLoader.format_prompt(self.prompts.get("fallback"), agent_name=self.agent_name)

    def build_memory_context(self, record: SubjectRecord) -> str:
        """从对象档案中挑出本智能体需要的记忆，子类实现"""
        raise NotImplementedError

    def build_system_instruction(self, memory_context: str) -> str:
        return PromptLoader.format_prompt(
            self.prompts.get("system_prompt"),
            agent_name=self.agent_name,
            memory_context=memory_context
        )

    def scripted_message(self, key: str) -> Message:
        """生成预设的助手消息（欢迎语等），不经过模型"""
        text = PromptLoader.format_prompt(self.prompts.get(key), agent_name=self.agent_name)
        return Message(role="assistant", text=text)

    @contextmanager
    def reserve(self, session_key: str) -> Iterator[None]:
        """
        占用会话的回复通道，退出时释放

        Raises:
            PipelineBusyError: 同一会话上一个请求尚未完成
        """
        if self.is_busy(session_key):
            raise PipelineBusyError(f"{self.agent_name}正在回复中，请稍候")
        self._busy.add(session_key)
        try:
            yield
        finally:
            self._busy.discard(session_key)

    async def send(
            self,
            session_key: str,
            log: Sequence[Message],
            new_text: str,
            memory_context: str
    ) -> str:
        """
        发送一轮用户输入并返回助手回复

        Args:
            session_key: 对话归属（对象ID），同一归属同时只允许一个请求
            log: 本轮之前的对话记录，系统通知不会发送给模型
            new_text: 用户本轮输入
            memory_context: 由 MemoryInjector 生成的记忆上下文

        Returns:
            str: 助手回复；模型调用失败或超时时返回兜底回复

        Raises:
            ValueError: 输入为空
            PipelineBusyError: 同一会话上一个请求尚未完成
        """
        with self.reserve(session_key):
            return await self.respond(log, new_text, memory_context)

    async def respond(self, log: Sequence[Message], new_text: str, memory_context: str) -> str:
        """不做占用检查的 send，调用方需已持有 reserve"""
        text = new_text.strip()
        if not text:
            raise ValueError("消息内容不能为空")

        system_instruction = self.build_system_instruction(memory_context)
        try:
            reply = await asyncio.wait_for(
                self.llm_service.complete(list(log), text, system_instruction, self.temperature),
                timeout=self.timeout_seconds
            )
            logger.info(f"{self.agent_name}响应生成完成")
            return reply
        except asyncio.TimeoutError:
            logger.error(f"{self.agent_name}调用模型超时（{self.timeout_seconds}s），使用兜底回复")
            return self.fallback_reply
        except Exception as e:
            logger.error(f"{self.agent_name}对话出错，使用兜底回复: {str(e)}")
            return self.fallback_reply
