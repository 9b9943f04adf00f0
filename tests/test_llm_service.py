import pytest

from andun.business_logic.services.llm_service import (
    DEFAULT_MODELS,
    JSON_MODE_DIRECTIVE,
    GeminiChatService,
    OpenAIService,
    create_llm_service,
    to_gemini_history,
    to_openai_messages,
)
from andun.core.config import Settings
from andun.core.exceptions import LLMConfigurationError
from andun.models.schemas import Message


def _history():
    return [
        Message(role="assistant", text="你好，今天工作累吗？"),
        Message(role="subject", text="还行，就是夜班多。"),
        Message(role="system", text="已上传文件: 体检.txt"),
        Message(role="assistant", text="夜班多会影响睡眠吗？"),
    ]


def test_openai_messages_map_roles_and_skip_system_notices():
    messages = to_openai_messages(_history(), "睡不太好", "系统指令")

    assert messages[0] == {"role": "system", "content": "系统指令"}
    assert [m["role"] for m in messages[1:]] == ["assistant", "user", "assistant", "user"]
    assert messages[-1]["content"] == "睡不太好"
    assert all("体检" not in m["content"] for m in messages)


def test_openai_messages_json_mode_appends_directive():
    messages = to_openai_messages([], "生成报告", "系统指令", json_mode=True)
    assert messages[0]["content"] == "系统指令" + JSON_MODE_DIRECTIVE
    assert len(messages) == 2


def test_gemini_history_uses_model_role_for_assistant():
    history = to_gemini_history(_history())
    assert [c.role for c in history] == ["model", "user", "model"]
    assert history[1].parts[0].text == "还行，就是夜班多。"


def test_factory_defaults_per_provider():
    settings = Settings(
        _env_file=None, LLM_PROVIDER="gemini", LLM_MODEL=None, GEMINI_API_KEY="g-key", OPENROUTER_API_KEY="o-key"
    )

    gemini = create_llm_service(settings=settings)
    assert isinstance(gemini, GeminiChatService)
    assert gemini.model_name == DEFAULT_MODELS["gemini"]

    openrouter = create_llm_service(provider="openrouter", settings=settings)
    assert isinstance(openrouter, OpenAIService)
    assert openrouter.model_name == "google/gemini-2.0-flash-001"


def test_factory_explicit_model_overrides_defaults():
    settings = Settings(_env_file=None, LLM_MODEL="configured-model")
    service = create_llm_service(provider="OpenRouter", api_key="k", model_name="explicit", settings=settings)
    assert service.model_name == "explicit"

    service = create_llm_service(provider="openrouter", api_key="k", settings=settings)
    assert service.model_name == "configured-model"


def test_factory_rejects_unknown_provider():
    with pytest.raises(ValueError):
        create_llm_service(provider="nope", settings=Settings(_env_file=None))


@pytest.mark.parametrize("provider", ["gemini", "openrouter"])
async def test_missing_api_key_raises_configuration_error(provider):
    service = create_llm_service(provider=provider, settings=Settings(_env_file=None, GEMINI_API_KEY="", OPENROUTER_API_KEY=""))
    with pytest.raises(LLMConfigurationError):
        await service.complete([], "你好", "系统指令", 0.5)
