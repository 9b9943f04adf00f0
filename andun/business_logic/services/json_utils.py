# andun/business_logic/services/json_utils.py
import json
import re
from typing import Dict, Any, Optional

from .logger import logger

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*(.*?)```", re.DOTALL)
_DECODER = json.JSONDecoder()


def extract_json_from_text(text: str) -> str:
    """去掉 Markdown 代码块围栏；没有围栏时原样返回"""
    fenced = _FENCE_PATTERN.search(text)
    if fenced:
        return fenced.group(1).strip()
    return text.strip()


def parse_json_object(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    安全地把模型输出解析为单个JSON对象

    依次尝试从每个 '{' 处解码，返回第一个完整的JSON对象，
    以容忍模型在JSON前后附带的解释性文字（其中也可能含有花括号）。

    Returns:
        Optional[Dict[str, Any]]: 解析结果；文本为空或找不到JSON对象时返回None
    """
    if not text or not text.strip():
        logger.error("JSON解析失败: 模型返回了空内容")
        return None

    candidate = extract_json_from_text(text)
    index = candidate.find("{")
    while index != -1:
        try:
            data, _ = _DECODER.raw_decode(candidate, index)
        except json.JSONDecodeError:
            pass
        else:
            if isinstance(data, dict):
                return data
        index = candidate.find("{", index + 1)

    logger.error(f"JSON解析失败: 未找到合法的JSON对象\n原始文本: {text}")
    return None
