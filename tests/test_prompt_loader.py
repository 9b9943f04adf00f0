from andun.business_logic.services.prompt_loader import PromptLoader


def test_load_known_and_missing_prompts():
    prompts = PromptLoader.load_prompts("report")
    assert {"system_prompt", "schema", "generate_report", "update_report"} <= set(prompts)
    assert PromptLoader.load_prompts("no_such_agent") == {}


def test_loaded_prompts_are_copies():
    PromptLoader.load_prompts("assessment")["welcome"] = "被改了"
    assert PromptLoader.load_prompts("assessment")["welcome"] != "被改了"


def test_format_prompt_escapes_and_values():
    template = '示例: {{"a": 1}}\n数据: {data}\n对话: {conversation}'
    result = PromptLoader.format_prompt(template, data={"风险": "low"}, conversation="警员: {不是占位符}")

    assert '示例: {"a": 1}' in result
    assert '"风险": "low"' in result
    assert "警员: {不是占位符}" in result


def test_format_prompt_missing_argument_keeps_placeholder():
    assert PromptLoader.format_prompt("你好，{agent_name}{name}", agent_name="心语") == "你好，心语{name}"
    assert PromptLoader.format_prompt(None) == ""
