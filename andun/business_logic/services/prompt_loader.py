# andun/business_logic/services/prompt_loader.py
import copy
import json
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

import yaml

from .logger import logger

PROMPTS_DIR = Path(__file__).resolve().parents[2] / "config" / "prompts"

# {name} 为占位符；{{ 和 }} 为字面花括号
_TOKEN_PATTERN = re.compile(r"\{\{|\}\}|\{(\w+)\}")


@lru_cache(maxsize=None)
def _read_prompt_file(agent_type: str) -> Dict[str, str]:
    config_path = PROMPTS_DIR / f"{agent_type}_prompts.yaml"
    if not config_path.exists():
        logger.warning(f"找不到提示词配置文件: {config_path}")
        return {}

    try:
        prompts = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"加载提示词配置失败: {str(e)}")
        return {}

    logger.info(f"成功加载了 {agent_type} 的 {len(prompts)} 个提示词模板")
    return prompts


class PromptLoader:
    """提示词加载器，用于从 config/prompts 下的 YAML 文件加载提示词模板"""

    @staticmethod
    def load_prompts(agent_type: str) -> Dict[str, str]:
        """加载 `{agent_type}_prompts.yaml`，同一文件只读取一次"""
        return copy.deepcopy(_read_prompt_file(agent_type))

    @staticmethod
    def format_prompt(template: str, **kwargs: Any) -> str:
        """
        格式化提示词模板

        dict/list 类型的参数渲染为 JSON；参数值原样插入，不会被再次解析。
        缺少的参数保留原占位符并记录错误。
        """
        if template is None:
            logger.error("尝试格式化空的提示词模板 (None)。请检查对应的 prompts.yaml 是否包含该键名。")
            return ""

        values = {
            key: json.dumps(value, ensure_ascii=False, indent=2) if isinstance(value, (dict, list)) else str(value)
            for key, value in kwargs.items()
        }

        def substitute(match: re.Match) -> str:
            token = match.group(0)
            if token == "{{":
                return "{"
            if token == "}}":
                return "}"
            name = match.group(1)
            if name not in values:
                logger.error(f"格式化提示词时缺少参数: {name}")
                return token
            return values[name]

        return _TOKEN_PATTERN.sub(substitute, template)
