# andun/core/config.py

from typing import Optional
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    应用配置模型。
    使用 Pydantic-Settings 自动从环境变量或 .env 文件中读取配置。
    """
    APP_NAME: str = "AnDun-Psy"
    DEBUG_MODE: bool = False

    # --- 模型服务配置 ---
    LLM_PROVIDER: str = "gemini"          # gemini | openrouter
    LLM_MODEL: Optional[str] = None       # 显式指定时覆盖服务商默认模型
    GEMINI_API_KEY: str = ""
    OPENROUTER_API_KEY: str = ""
    OPENROUTER_API_BASE: str = "https://openrouter.ai/api/v1"
    LLM_TIMEOUT_SECONDS: float = 60.0

    # --- 智能体配置 ---
    ASSESSMENT_AGENT_NAME: str = "心语"
    COUNSELING_AGENT_NAME: str = "蓝盾"

    # --- 流程阈值 ---
    REPORT_MIN_TURNS: int = 3
    REFRESH_MIN_MESSAGES: int = 2
    REFINE_WINDOW: int = 10

    # --- 数据存储 ---
    SUBJECT_STORE_PATH: str = ""          # 为空时仅保存在内存中
    SEED_DEMO_DATA: bool = True
    LOG_DIR: str = "runtime-logs"

    # --- JWT 安全配置 ---
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480

    # Pydantic-Settings的配置类
    model_config = SettingsConfigDict(
        env_file=".env",            # 指定要读取的.env文件
        env_file_encoding='utf-8',  # 指定文件编码
        extra="ignore"
    )


@lru_cache
def get_settings() -> Settings:
    """
    获取配置实例的函数。
    使用lru_cache装饰器确保Settings类只被实例化一次。
    """
    return Settings()


settings = get_settings()
