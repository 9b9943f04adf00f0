# andun/business_logic/controllers/session_controller.py
from contextlib import contextmanager
from typing import Dict, Iterator, List, NamedTuple, Optional, Set

from andun.core.config import Settings, get_settings
from andun.core.exceptions import (
    GuardViolationError,
    NotFoundError,
    PermissionDeniedError,
    PipelineBusyError,
    SessionError,
)
from andun.data_access.repositories.identity_repository import IdentityRepository
from andun.data_access.repositories.subject_repository import SubjectRepository
from andun.models.phase_schemas import ALLOWED_NAVIGATION, SUBJECT_MODES, AppMode
from andun.models.schemas import (
    Feedback,
    Message,
    SessionContext,
    SessionSettings,
    StructuredMemory,
    SubjectRecord,
    SubjectStat,
    SubjectView,
    UploadedDocument,
)
from ..agents import AssessmentAgent, CounselingAgent, ConversationAgent, ReportSynthesizer
from ..services.llm_service import create_llm_service
from ..services.logger import logger

REFRESH_NOTICE = "【系统通知】：根据刚才的沟通，心理评估档案已同步更新。"
UPLOAD_NOTICE = "已上传文件: {filename}"


class SessionAgents(NamedTuple):
    assessment: AssessmentAgent
    counseling: CounselingAgent
    synthesizer: ReportSynthesizer


class SessionController:
    """
    会话控制器

    负责登录、模式切换、流程守卫，并把评估/疏导/报告三条管线串起来。
    会话保存在进程内的注册表中，按 session_id 查找。
    """

    def __init__(
            self,
            subject_repository: SubjectRepository,
            identity_repository: IdentityRepository,
            assessment_agent: AssessmentAgent,
            counseling_agent: CounselingAgent,
            report_synthesizer: ReportSynthesizer,
            settings: Optional[Settings] = None
    ):
        self.subject_repository = subject_repository
        self.identity_repository = identity_repository
        self.assessment_agent = assessment_agent
        self.counseling_agent = counseling_agent
        self.report_synthesizer = report_synthesizer
        self.settings = settings or get_settings()

        self._sessions: Dict[str, SessionContext] = {}
        # 正在生成/更新报告的对象
        self._report_busy: Set[str] = set()
        self._defaults = SessionAgents(assessment_agent, counseling_agent, report_synthesizer)
        # 修改过设置的会话：原始设置与按设置创建的智能体
        self._session_configs: Dict[str, Dict[str, str]] = {}
        self._session_agents: Dict[str, SessionAgents] = {}

    # ------------------------------------------------------------------
    # 会话管理
    # ------------------------------------------------------------------

    async def login(self, login_token: str) -> Optional[SessionContext]:
        identity = await self.identity_repository.resolve(login_token)
        if identity is None:
            logger.warning("登录失败：未识别的账号")
            return None

        if identity.is_admin:
            ctx = SessionContext(identity=identity, mode=AppMode.ADMIN_DASHBOARD)
        else:
            ctx = SessionContext(identity=identity, viewed_subject_id=identity.id, mode=AppMode.ASSESSMENT)
            await self._ensure_welcome(ctx, identity.id)

        self._sessions[ctx.session_id] = ctx
        logger.info(f"{identity.display_name}({identity.id}) 登录，进入{ctx.mode.value}")
        return ctx

    def get_session(self, session_id: str) -> SessionContext:
        ctx = self._sessions.get(session_id)
        if ctx is None:
            raise SessionError("会话不存在或已失效")
        return ctx

    async def logout(self, ctx: SessionContext):
        self._sessions.pop(ctx.session_id, None)
        self._session_configs.pop(ctx.session_id, None)
        self._session_agents.pop(ctx.session_id, None)
        ctx.viewed_subject_id = None
        ctx.mode = AppMode.LOGIN
        logger.info(f"{ctx.identity.display_name}({ctx.identity.id}) 退出登录")

    # ------------------------------------------------------------------
    # 模式切换
    # ------------------------------------------------------------------

    async def view_subject(self, ctx: SessionContext, subject_id: str) -> SessionContext:
        """管理员查看某位警员：有报告时直接看报告，否则进入评估"""
        self._require_admin(ctx)
        identity = await self.identity_repository.get(subject_id)
        if identity is None or identity.is_admin:
            raise NotFoundError(f"对象不存在: {subject_id}")

        ctx.viewed_subject_id = subject_id
        await self._ensure_welcome(ctx, subject_id)
        record = await self.subject_repository.get(subject_id)
        ctx.mode = AppMode.REPORT if record.memory is not None else AppMode.ASSESSMENT
        logger.info(f"管理员查看 {identity.display_name}({subject_id})，进入{ctx.mode.value}")
        return ctx

    async def back_to_dashboard(self, ctx: SessionContext) -> SessionContext:
        self._require_admin(ctx)
        ctx.viewed_subject_id = None
        ctx.mode = AppMode.ADMIN_DASHBOARD
        return ctx

    async def end_session(self, ctx: SessionContext) -> SessionContext:
        """结束当前对话：管理员回到指挥中心，警员回到报告页"""
        if ctx.identity.is_admin:
            return await self.back_to_dashboard(ctx)
        self._require_subject(ctx)
        ctx.mode = AppMode.REPORT
        return ctx

    async def navigate(self, ctx: SessionContext, mode: AppMode) -> SessionContext:
        if mode == AppMode.ADMIN_DASHBOARD:
            return await self.back_to_dashboard(ctx)
        if mode not in SUBJECT_MODES:
            raise GuardViolationError(f"不能切换到{mode.value}")

        self._require_subject(ctx)
        if mode != ctx.mode and mode not in ALLOWED_NAVIGATION.get(ctx.mode, ()):
            raise GuardViolationError(f"不能从{ctx.mode.value}切换到{mode.value}")

        if mode == AppMode.COUNSELING:
            return await self.enter_counseling(ctx)
        if mode == AppMode.REPORT and mode != ctx.mode:
            record = await self.subject_repository.get(ctx.viewed_subject_id)
            if record.memory is None:
                raise GuardViolationError("尚未生成评估报告")
        ctx.mode = mode
        return ctx

    # ------------------------------------------------------------------
    # 流程守卫
    # ------------------------------------------------------------------

    def can_generate_report(self, record: SubjectRecord) -> bool:
        return record.turn_count >= self.settings.REPORT_MIN_TURNS

    @staticmethod
    def can_enter_counseling(record: SubjectRecord) -> bool:
        return record.memory is not None

    def can_refresh_memory(self, record: SubjectRecord) -> bool:
        return record.memory is not None and len(record.counseling_log) >= self.settings.REFRESH_MIN_MESSAGES

    # ------------------------------------------------------------------
    # 评估
    # ------------------------------------------------------------------

    async def send_assessment_message(self, ctx: SessionContext, text: str) -> Message:
        subject_id = self._require_subject(ctx)
        self._require_mode(ctx, AppMode.ASSESSMENT)
        return await self._converse(self._agents(ctx).assessment, subject_id, "assessment_log", text, count_turn=True)

    async def generate_report(self, ctx: SessionContext) -> Optional[StructuredMemory]:
        """
        根据评估对话生成报告；已有报告时视为刷新，新报告整体替换旧报告

        Returns:
            Optional[StructuredMemory]: 新报告；失败时返回None，原报告保持不变

        Raises:
            GuardViolationError: 评估轮数不足或不在评估模式
        """
        subject_id = self._require_subject(ctx)
        self._require_mode(ctx, AppMode.ASSESSMENT)
        record = await self.subject_repository.get(subject_id)
        if not self.can_generate_report(record):
            raise GuardViolationError(f"至少需要完成{self.settings.REPORT_MIN_TURNS}轮评估对话才能生成报告")

        with self._reserve_report(subject_id):
            memory = await self._agents(ctx).synthesizer.generate(record.assessment_log, record.memory)

        if memory is None:
            logger.warning(f"对象 {subject_id} 报告生成失败，保留原报告")
            return None

        await self.subject_repository.save(subject_id, memory=memory)
        ctx.mode = AppMode.REPORT
        return memory

    # ------------------------------------------------------------------
    # 疏导
    # ------------------------------------------------------------------

    async def enter_counseling(self, ctx: SessionContext) -> SessionContext:
        subject_id = self._require_subject(ctx)
        record = await self.subject_repository.get(subject_id)
        if not self.can_enter_counseling(record):
            raise GuardViolationError("请先完成评估并生成报告")

        if not record.counseling_log:
            await self.subject_repository.save(
                subject_id, counseling_log=[self._agents(ctx).counseling.greeting_message()]
            )
        ctx.mode = AppMode.COUNSELING
        return ctx

    async def send_counseling_message(self, ctx: SessionContext, text: str) -> Message:
        subject_id = self._require_subject(ctx)
        self._require_mode(ctx, AppMode.COUNSELING)
        return await self._converse(self._agents(ctx).counseling, subject_id, "counseling_log", text)

    async def refresh_memory(self, ctx: SessionContext) -> Optional[StructuredMemory]:
        """用最近的疏导对话更新报告，成功后在疏导记录中追加系统通知"""
        subject_id = self._require_subject(ctx)
        self._require_mode(ctx, AppMode.COUNSELING)
        record = await self.subject_repository.get(subject_id)
        if not self.can_refresh_memory(record):
            raise GuardViolationError("当前没有可用于更新报告的疏导对话")

        with self._reserve_report(subject_id):
            memory = await self._agents(ctx).synthesizer.refine(record.memory, record.counseling_log)

        if memory is None:
            logger.warning(f"对象 {subject_id} 档案同步失败，保留原报告")
            return None

        record = await self.subject_repository.get(subject_id)
        notice = Message(role="system", text=REFRESH_NOTICE)
        await self.subject_repository.save(
            subject_id, memory=memory, counseling_log=[*record.counseling_log, notice]
        )
        return memory

    async def upload_document(self, ctx: SessionContext, filename: str, content: str) -> UploadedDocument:
        subject_id = self._require_subject(ctx)
        self._require_mode(ctx, AppMode.COUNSELING)
        filename = (filename or "").strip()
        if not filename:
            raise ValueError("文件名不能为空")

        document = UploadedDocument(filename=filename, content=content)
        record = await self.subject_repository.get(subject_id)
        notice = Message(role="system", text=UPLOAD_NOTICE.format(filename=filename))
        await self.subject_repository.save(
            subject_id,
            documents=[*record.documents, document],
            counseling_log=[*record.counseling_log, notice]
        )
        logger.info(f"对象 {subject_id} 上传文件 {filename}（{len(content)} 字）")
        return document

    async def set_feedback(self, ctx: SessionContext, message_id: str, feedback: Feedback) -> Message:
        subject_id = self._require_subject(ctx)
        record = await self.subject_repository.get(subject_id)

        for index, message in enumerate(record.counseling_log):
            if message.id == message_id:
                break
        else:
            raise NotFoundError(f"消息不存在: {message_id}")

        if message.role != "assistant":
            raise GuardViolationError("只能对助手回复进行评价")

        updated = message.with_feedback(feedback)
        if updated is message:
            return message

        log = list(record.counseling_log)
        log[index] = updated
        await self.subject_repository.save(subject_id, counseling_log=log)
        return updated

    # ------------------------------------------------------------------
    # 会话设置
    # ------------------------------------------------------------------

    async def update_settings(
            self,
            ctx: SessionContext,
            provider: Optional[str] = None,
            api_key: Optional[str] = None,
            model_name: Optional[str] = None,
            assessment_agent_name: Optional[str] = None,
            counseling_agent_name: Optional[str] = None
    ) -> SessionSettings:
        """
        修改当前会话使用的模型服务和智能体名字，之后该会话的所有调用都使用新设置

        未提供（None）的字段保持不变；空字符串表示恢复默认值。
        显式给出的 API Key 和模型优先于配置文件中的值。

        Raises:
            ValueError: 不支持的服务商
        """
        config = dict(self._config_for(ctx))
        updates = {
            "provider": provider,
            "api_key": api_key,
            "model_name": model_name,
            "assessment_agent_name": assessment_agent_name,
            "counseling_agent_name": counseling_agent_name,
        }
        for key, value in updates.items():
            if value is not None:
                config[key] = value.strip()

        provider_name = (config["provider"] or self.settings.LLM_PROVIDER).lower()
        llm_service = create_llm_service(
            provider=provider_name,
            api_key=config["api_key"] or None,
            model_name=config["model_name"] or None,
            settings=self.settings
        )
        config["provider"] = provider_name
        agents = SessionAgents(
            assessment=self._defaults.assessment.derive(
                llm_service, config["assessment_agent_name"] or self._defaults.assessment.agent_name
            ),
            counseling=self._defaults.counseling.derive(
                llm_service, config["counseling_agent_name"] or self._defaults.counseling.agent_name
            ),
            synthesizer=ReportSynthesizer(
                llm_service, self._defaults.synthesizer.timeout_seconds, self._defaults.synthesizer.refine_window
            ),
        )
        self._session_configs[ctx.session_id] = config
        self._session_agents[ctx.session_id] = agents
        logger.info(
            f"{ctx.identity.display_name}({ctx.identity.id}) 更新会话设置: "
            f"{provider_name}/{llm_service.model_name}, "
            f"{agents.assessment.agent_name}/{agents.counseling.agent_name}"
        )
        return self.session_settings(ctx)

    def session_settings(self, ctx: SessionContext) -> SessionSettings:
        config = self._config_for(ctx)
        agents = self._agents(ctx)
        provider = (config["provider"] or self.settings.LLM_PROVIDER).lower()
        configured_key = self.settings.GEMINI_API_KEY if provider == "gemini" else self.settings.OPENROUTER_API_KEY
        return SessionSettings(
            provider=provider,
            model_name=agents.assessment.llm_service.model_name,
            has_api_key=bool(config["api_key"] or configured_key),
            assessment_agent_name=agents.assessment.agent_name,
            counseling_agent_name=agents.counseling.agent_name
        )

    # ------------------------------------------------------------------
    # 查询
    # ------------------------------------------------------------------

    async def dashboard(self, ctx: SessionContext) -> List[SubjectStat]:
        """指挥中心：所有警员的报告状态"""
        self._require_admin(ctx)
        stats = []
        for identity in await self.identity_repository.list_subjects():
            record = await self.subject_repository.get(identity.id)
            memory = record.memory
            stats.append(SubjectStat(
                identity=identity,
                has_report=memory is not None,
                risk_level=memory.risk_level if memory else "unknown",
                last_updated=memory.last_updated if memory else None
            ))
        return stats

    async def view(self, ctx: SessionContext) -> SubjectView:
        view = SubjectView(
            session_id=ctx.session_id,
            identity=ctx.identity,
            mode=ctx.mode,
            viewed_subject_id=ctx.viewed_subject_id
        )
        subject_id = ctx.viewed_subject_id
        if subject_id is None:
            return view

        record = await self.subject_repository.get(subject_id)
        view.record = record
        view.can_generate_report = self.can_generate_report(record)
        view.can_enter_counseling = self.can_enter_counseling(record)
        view.can_refresh_memory = self.can_refresh_memory(record)
        view.assessment_busy = self.assessment_agent.is_busy(subject_id)
        view.counseling_busy = self.counseling_agent.is_busy(subject_id)
        view.report_busy = subject_id in self._report_busy
        return view

    # ------------------------------------------------------------------
    # 内部方法
    # ------------------------------------------------------------------

    async def _converse(
            self,
            agent: ConversationAgent,
            subject_id: str,
            log_field: str,
            text: str,
            count_turn: bool = False
    ) -> Message:
        """先保存用户消息，再请求回复并追加到同一份记录"""
        text = (text or "").strip()
        if not text:
            raise ValueError("消息内容不能为空")

        with agent.reserve(subject_id):
            record = await self.subject_repository.get(subject_id)
            history = getattr(record, log_field)
            fields = {log_field: [*history, Message(role="subject", text=text)]}
            if count_turn:
                fields["turn_count"] = record.turn_count + 1
            await self.subject_repository.save(subject_id, **fields)

            reply_text = await agent.respond(history, text, agent.build_memory_context(record))

            reply = Message(role="assistant", text=reply_text)
            record = await self.subject_repository.get(subject_id)
            await self.subject_repository.save(subject_id, **{log_field: [*getattr(record, log_field), reply]})
        return reply

    def _agents(self, ctx: SessionContext) -> SessionAgents:
        return self._session_agents.get(ctx.session_id, self._defaults)

    def _config_for(self, ctx: SessionContext) -> Dict[str, str]:
        # 空字符串表示使用默认值
        return self._session_configs.get(ctx.session_id) or dict.fromkeys(
            ("provider", "api_key", "model_name", "assessment_agent_name", "counseling_agent_name"), ""
        )

    async def _ensure_welcome(self, ctx: SessionContext, subject_id: str):
        record = await self.subject_repository.get(subject_id)
        if not record.assessment_log:
            await self.subject_repository.save(
                subject_id, assessment_log=[self._agents(ctx).assessment.welcome_message()]
            )

    @contextmanager
    def _reserve_report(self, subject_id: str) -> Iterator[None]:
        if subject_id in self._report_busy:
            raise PipelineBusyError("报告正在生成中，请稍候")
        self._report_busy.add(subject_id)
        try:
            yield
        finally:
            self._report_busy.discard(subject_id)

    @staticmethod
    def _require_admin(ctx: SessionContext):
        if not ctx.identity.is_admin:
            raise PermissionDeniedError("仅管理员可执行此操作")

    @staticmethod
    def _require_subject(ctx: SessionContext) -> str:
        if ctx.viewed_subject_id is None:
            raise GuardViolationError("当前没有正在查看的对象")
        return ctx.viewed_subject_id

    @staticmethod
    def _require_mode(ctx: SessionContext, mode: AppMode):
        if ctx.mode != mode:
            raise GuardViolationError(f"当前处于{ctx.mode.value}，不能执行{mode.value}操作")
