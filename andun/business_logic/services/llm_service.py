# andun/business_logic/services/llm_service.py

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from google import genai
from google.genai import types
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from andun.core.config import Settings, get_settings
from andun.core.exceptions import LLMConfigurationError, LLMServiceError
from andun.models.schemas import Message
from .logger import logger

DEFAULT_MODELS: Dict[str, str] = {
    "gemini": "gemini-2.5-flash",
    "openrouter": "google/gemini-2.0-flash-001",
}

JSON_MODE_DIRECTIVE = (
    "\n\n重要：你必须只输出一个严格合法的 JSON 对象。"
    "不要使用 Markdown 代码块，不要在 JSON 前后添加任何解释或说明。"
)

# 对外部服务放宽骚扰/仇恨类过滤，警务对话中经常出现执法、暴力相关描述
_GEMINI_SAFETY_SETTINGS = [
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_HARASSMENT,
        threshold=types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    ),
    types.SafetySetting(
        category=types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
        threshold=types.HarmBlockThreshold.BLOCK_ONLY_HIGH,
    ),
]


def conversational_turns(history: Sequence[Message]) -> List[Message]:
    """过滤掉系统通知，只保留真正的对话轮次"""
    return [m for m in history if m.role != "system"]


def to_openai_messages(
        history: Sequence[Message],
        new_turn: str,
        system_instruction: str,
        json_mode: bool = False
) -> List[Dict[str, str]]:
    """
    将内部对话记录展开为 chat-completions 的消息数组

    subject -> user, assistant -> assistant；系统通知不会发送给模型。
    """
    if json_mode:
        system_instruction = system_instruction + JSON_MODE_DIRECTIVE

    messages = [{"role": "system", "content": system_instruction}]
    for message in conversational_turns(history):
        role = "assistant" if message.role == "assistant" else "user"
        messages.append({"role": role, "content": message.text})
    messages.append({"role": "user", "content": new_turn})
    return messages


def to_gemini_history(history: Sequence[Message]) -> List[types.Content]:
    """将内部对话记录转换为 Gemini 会话历史（subject -> user, assistant -> model）"""
    return [
        types.Content(
            role="model" if message.role == "assistant" else "user",
            parts=[types.Part(text=message.text)],
        )
        for message in conversational_turns(history)
    ]


class LLMService(ABC):
    """抽象LLM服务基类：给定历史、新一轮输入、系统指令和温度，返回助手文本"""

    provider: str = ""
    model_name: str = ""

    @abstractmethod
    async def complete(
            self,
            history: Sequence[Message],
            new_turn: str,
            system_instruction: str,
            temperature: float,
            json_mode: bool = False
    ) -> str:
        """向LLM发送请求并获取纯文本响应；json_mode 下要求模型只输出一个JSON对象"""
        pass


class GeminiChatService(LLMService):
    """Gemini 原生多轮会话实现：系统指令在创建会话时给出，只提交新一轮输入"""

    provider = "gemini"

    def __init__(self, api_key: str, model_name: str = DEFAULT_MODELS["gemini"]):
        self.model_name = model_name
        self.client = genai.Client(api_key=api_key) if api_key else None
        logger.info(f"GeminiChatService initialized for model '{model_name}'")

    async def complete(
            self,
            history: Sequence[Message],
            new_turn: str,
            system_instruction: str,
            temperature: float,
            json_mode: bool = False
    ) -> str:
        if self.client is None:
            raise LLMConfigurationError("未配置 Gemini API Key")

        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=temperature,
            safety_settings=_GEMINI_SAFETY_SETTINGS,
            response_mime_type="application/json" if json_mode else None,
        )
        try:
            chat = self.client.aio.chats.create(
                model=self.model_name,
                config=config,
                history=to_gemini_history(history),
            )
            response = await chat.send_message(new_turn)
        except Exception as e:
            logger.error(f"Gemini调用失败: {str(e)}")
            raise LLMServiceError(f"Gemini调用失败: {str(e)}") from e

        if not response.text:
            raise LLMServiceError("Gemini返回了空响应")
        return response.text


class OpenAIService(LLMService):
    """OpenAI兼容接口的无状态实现（OpenRouter 等）：每次请求都重发完整的消息数组"""

    provider = "openrouter"

    def __init__(self, api_key: str, model_name: str, api_base: Optional[str], request_timeout: float = 120):
        self.model_name = model_name
        self.model = None
        if api_key:
            self.model = ChatOpenAI(
                model=model_name,
                api_key=api_key,
                base_url=api_base,
                timeout=request_timeout,
                max_retries=1,
            )
        logger.info(f"OpenAIService initialized for model '{model_name}' at base_url '{api_base}'")

    async def complete(
            self,
            history: Sequence[Message],
            new_turn: str,
            system_instruction: str,
            temperature: float,
            json_mode: bool = False
    ) -> str:
        if self.model is None:
            raise LLMConfigurationError("未配置 OpenRouter API Key")

        lc_messages = []
        for item in to_openai_messages(history, new_turn, system_instruction, json_mode):
            if item["role"] == "system":
                lc_messages.append(SystemMessage(content=item["content"]))
            elif item["role"] == "assistant":
                lc_messages.append(AIMessage(content=item["content"]))
            else:
                lc_messages.append(HumanMessage(content=item["content"]))

        bind_kwargs = {"temperature": temperature}
        if json_mode:
            bind_kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.model.bind(**bind_kwargs).ainvoke(lc_messages)
        except Exception as e:
            logger.error(f"LLM调用失败: {str(e)}")
            raise LLMServiceError(f"LLM调用失败: {str(e)}") from e

        content = response.content
        if isinstance(content, list):
            content = "".join(part if isinstance(part, str) else part.get("text", "") for part in content)
        if not content:
            raise LLMServiceError("LLM返回了空响应")
        return content


def create_llm_service(
        provider: Optional[str] = None,
        api_key: Optional[str] = None,
        model_name: Optional[str] = None,
        settings: Optional[Settings] = None
) -> LLMService:
    """
    LLM服务工厂函数。
    根据服务商选择端点、默认模型和密钥；显式传入的密钥/模型总是优先于默认值。
    """
    settings = settings or get_settings()
    provider = (provider or settings.LLM_PROVIDER).lower()
    if provider not in DEFAULT_MODELS:
        raise ValueError(f"不支持的LLM服务类型: {provider}")

    model_name = model_name or settings.LLM_MODEL or DEFAULT_MODELS[provider]
    logger.info(f"Creating LLM service of type: '{provider}'")

    if provider == "gemini":
        return GeminiChatService(
            api_key=api_key or settings.GEMINI_API_KEY,
            model_name=model_name,
        )
    return OpenAIService(
        api_key=api_key or settings.OPENROUTER_API_KEY,
        model_name=model_name,
        api_base=settings.OPENROUTER_API_BASE,
        request_timeout=settings.LLM_TIMEOUT_SECONDS,
    )
