# andun/models/schemas.py

import math
import uuid
import datetime
from typing import List, Optional, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .phase_schemas import AppMode

MessageRole = Literal["subject", "assistant", "system"]
Feedback = Literal["none", "positive", "negative"]
RiskLevel = Literal["low", "medium", "high"]
RecommendationType = Literal["immediate", "lifestyle", "professional"]
IdentityRole = Literal["subject", "admin"]

SEVERITY_MIN = 1
SEVERITY_MAX = 10


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# ===================================================================
# 1. 对话消息
# ===================================================================

class Message(BaseModel):
    """对话消息。除 feedback 外不可变。"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: MessageRole
    text: str
    created_at: datetime.datetime = Field(default_factory=_utcnow)
    feedback: Feedback = "none"

    def with_feedback(self, feedback: Feedback) -> "Message":
        """返回设置了反馈的消息；重复设置同一取值时原样返回。"""
        if feedback == self.feedback:
            return self
        return self.model_copy(update={"feedback": feedback})


# ===================================================================
# 2. 结构化记忆（评估报告）
# ===================================================================

class _CamelModel(BaseModel):
    """报告的 JSON 字段沿用驼峰命名，读取时两种写法都接受。"""
    model_config = ConfigDict(populate_by_name=True)


class StressSource(_CamelModel):
    category: str
    description: str
    severity: int

    @field_validator("severity", mode="before")
    @classmethod
    def clamp_severity(cls, value):
        # 模型可能返回越界或小数的分值，统一收敛到 [1, 10]
        if isinstance(value, bool):
            raise ValueError("severity must be a number")
        if isinstance(value, str):
            value = float(value.strip())
        if not isinstance(value, (int, float)) or not math.isfinite(value):
            raise ValueError("severity must be a finite number")
        return max(SEVERITY_MIN, min(SEVERITY_MAX, int(round(value))))


class PsychologicalStatus(_CamelModel):
    emotional_stability: str = Field(alias="emotionalStability")   # 情绪稳定性
    burnout_level: str = Field(alias="burnoutLevel")               # 职业倦怠
    social_support: str = Field(alias="socialSupport")             # 社会支持


class Recommendation(_CamelModel):
    title: str
    content: str
    type: RecommendationType

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value):
        return value.strip().lower() if isinstance(value, str) else value


class StructuredMemory(_CamelModel):
    """结构化记忆：每个对象同一时间只有一份有效报告，更新即整体替换。"""
    last_updated: datetime.datetime = Field(default_factory=_utcnow, alias="lastUpdated")
    summary: str
    stress_sources: List[StressSource] = Field(default_factory=list, alias="stressSources")
    psychological_status: PsychologicalStatus = Field(alias="psychologicalStatus")
    risk_level: RiskLevel = Field(alias="riskLevel")
    risk_analysis: str = Field("", alias="riskAnalysis")
    recommendations: List[Recommendation] = Field(default_factory=list)

    @field_validator("risk_level", mode="before")
    @classmethod
    def normalize_risk_level(cls, value):
        return value.strip().lower() if isinstance(value, str) else value

    def to_json_dict(self) -> dict:
        """按报告的对外格式（驼峰字段）导出。"""
        return self.model_dump(mode="json", by_alias=True)


# ===================================================================
# 3. 对象档案
# ===================================================================

class UploadedDocument(BaseModel):
    filename: str
    content: str


class SubjectRecord(BaseModel):
    """单个对象的持久化数据。首次访问时惰性创建。"""
    assessment_log: List[Message] = Field(default_factory=list)
    counseling_log: List[Message] = Field(default_factory=list)
    memory: Optional[StructuredMemory] = None
    documents: List[UploadedDocument] = Field(default_factory=list)
    turn_count: int = 0


class Identity(BaseModel):
    id: str
    display_name: str
    role: IdentityRole
    badge_number: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class SessionContext(BaseModel):
    """一次登录会话：登录身份与当前查看的对象分开保存。"""
    session_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    identity: Identity
    viewed_subject_id: Optional[str] = None
    mode: AppMode = AppMode.LOGIN


class SubjectStat(BaseModel):
    """指挥中心列表中的单条统计。"""
    identity: Identity
    has_report: bool
    risk_level: Union[RiskLevel, Literal["unknown"]] = "unknown"
    last_updated: Optional[datetime.datetime] = None


class SubjectView(BaseModel):
    """当前会话视图，供接口层渲染并决定按钮是否可用。"""
    session_id: str
    identity: Identity
    mode: AppMode
    viewed_subject_id: Optional[str] = None
    record: Optional[SubjectRecord] = None
    can_generate_report: bool = False
    can_enter_counseling: bool = False
    can_refresh_memory: bool = False
    assessment_busy: bool = False
    counseling_busy: bool = False
    report_busy: bool = False


# ===================================================================
# 4. 接口请求/响应模型
# ===================================================================

class LoginRequest(BaseModel):
    username: str = Field(..., examples=["9527"], description="登录账号（警号）")


class Token(BaseModel):
    """登录成功后返回的JWT令牌模型。"""
    access_token: str = Field(..., description="JWT访问令牌")
    token_type: str = Field("bearer", description="令牌类型")
    mode: AppMode


class ChatRequest(BaseModel):
    text: str = Field(..., min_length=1, description="用户的消息内容")


class ChatResponse(BaseModel):
    reply: Message
    turn_count: int


class NavigateRequest(BaseModel):
    mode: AppMode


class DocumentUpload(BaseModel):
    filename: str = Field(..., min_length=1)
    content: str


class FeedbackRequest(BaseModel):
    feedback: Feedback


class SettingsUpdate(BaseModel):
    """会话级模型与智能体设置；未提供的字段保持不变，空字符串表示恢复默认值。"""
    provider: Optional[Literal["gemini", "openrouter"]] = None
    api_key: Optional[str] = None
    model_name: Optional[str] = None
    assessment_agent_name: Optional[str] = None
    counseling_agent_name: Optional[str] = None


class SessionSettings(BaseModel):
    """当前会话生效的设置，不回传API Key本身。"""
    provider: str
    model_name: str
    has_api_key: bool
    assessment_agent_name: str
    counseling_agent_name: str
