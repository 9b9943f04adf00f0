# andun/business_logic/agents/report_synthesizer.py
import asyncio
import datetime
import json
from typing import Optional, Sequence

from pydantic import ValidationError

from andun.models.schemas import Message, StructuredMemory
from ..services.json_utils import parse_json_object
from ..services.llm_service import LLMService, conversational_turns
from ..services.prompt_loader import PromptLoader
from ..services.logger import logger

SYNTHESIS_TEMPERATURE = 0.3


class ReportSynthesizer:
    """报告合成器：把对话记录整理为结构化记忆（评估报告）"""

    def __init__(self, llm_service: LLMService, timeout_seconds: float = 60.0, refine_window: int = 10):
        """
        Args:
            llm_service: 模型服务
            timeout_seconds: 单次模型调用的超时时间
            refine_window: 增量更新时使用的最近对话条数
        """
        self.llm_service = llm_service
        self.timeout_seconds = timeout_seconds
        self.refine_window = refine_window

        self.prompts = PromptLoader.load_prompts("report")
        if not self.prompts:
            logger.warning("找不到报告合成提示词配置")
        self.schema = PromptLoader.format_prompt(self.prompts.get("schema"))

    @staticmethod
    def format_conversation(log: Sequence[Message], assistant_label: str) -> str:
        lines = []
        for message in conversational_turns(log):
            speaker = "警员" if message.role == "subject" else assistant_label
            lines.append(f"{speaker}: {message.text}")
        return "\n".join(lines)

    def build_generate_prompt(self, log: Sequence[Message], prior_memory: Optional[StructuredMemory] = None) -> str:
        refresh_directive = ""
        if prior_memory is not None:
            refresh_directive = PromptLoader.format_prompt(
                self.prompts.get("refresh_directive"),
                previous_risk_level=prior_memory.risk_level,
                previous_report=prior_memory.to_json_dict()
            )

        return PromptLoader.format_prompt(
            self.prompts.get("generate_report"),
            conversation=self.format_conversation(log, "评估助手"),
            refresh_directive=refresh_directive,
            schema=self.schema
        )

    def build_refine_prompt(self, prior_memory: StructuredMemory, recent_turns: Sequence[Message]) -> str:
        window = conversational_turns(recent_turns)[-self.refine_window:]
        return PromptLoader.format_prompt(
            self.prompts.get("update_report"),
            previous_report=prior_memory.to_json_dict(),
            conversation=self.format_conversation(window, "疏导专家"),
            schema=self.schema
        )

    async def generate(
            self,
            log: Sequence[Message],
            prior_memory: Optional[StructuredMemory] = None
    ) -> Optional[StructuredMemory]:
        """
        根据完整的评估对话生成报告；已有报告时按“更新”处理并与上次风险等级比较

        Returns:
            Optional[StructuredMemory]: 新报告；生成或解析失败时返回None
        """
        prompt = self.build_generate_prompt(log, prior_memory)
        memory = await self._synthesize(prompt)
        self._log_risk_change(prior_memory, memory)
        return memory

    async def refine(
            self,
            prior_memory: StructuredMemory,
            recent_turns: Sequence[Message]
    ) -> Optional[StructuredMemory]:
        """
        只用最近的疏导对话对现有报告做增量更新

        返回的对象整体替换旧报告，这里不做字段级比对。
        """
        prompt = self.build_refine_prompt(prior_memory, recent_turns)
        memory = await self._synthesize(prompt)
        self._log_risk_change(prior_memory, memory)
        return memory

    async def _synthesize(self, prompt: str) -> Optional[StructuredMemory]:
        try:
            response_text = await asyncio.wait_for(
                self.llm_service.complete(
                    [], prompt, self.prompts.get("system_prompt", ""), SYNTHESIS_TEMPERATURE, json_mode=True
                ),
                timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.error(f"报告生成超时（{self.timeout_seconds}s）")
            return None
        except Exception as e:
            logger.error(f"报告生成失败: {str(e)}")
            return None

        data = parse_json_object(response_text)
        if data is None:
            return None

        # 更新时间以本地生成时刻为准，忽略模型返回的值
        data.pop("last_updated", None)
        data["lastUpdated"] = datetime.datetime.now(datetime.timezone.utc)

        try:
            memory = StructuredMemory.model_validate(data)
        except ValidationError as e:
            logger.error(f"报告结构校验失败: {str(e)}\n原始数据: {json.dumps(data, ensure_ascii=False, default=str)}")
            return None

        logger.info(f"报告生成完成，风险等级: {memory.risk_level}")
        return memory

    @staticmethod
    def _log_risk_change(prior: Optional[StructuredMemory], current: Optional[StructuredMemory]):
        if prior is not None and current is not None and prior.risk_level != current.risk_level:
            logger.info(f"风险等级发生变化: {prior.risk_level} -> {current.risk_level}")
