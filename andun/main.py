# andun/main.py

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager

from .api import admin, auth, session

from .business_logic.agents import AssessmentAgent, CounselingAgent, ReportSynthesizer
from .business_logic.controllers import SessionController
from .business_logic.services.llm_service import create_llm_service
from .business_logic.services.logger import logger
from .core.config import get_settings
from .core.exceptions import (
    AppException,
    GuardViolationError,
    LLMServiceError,
    NotFoundError,
    PermissionDeniedError,
    PipelineBusyError,
    SessionError,
)
from .data_access.repositories.identity_repository import IdentityRepository
from .data_access.repositories.subject_repository import SubjectRepository

# 业务异常到HTTP状态码的映射，按继承顺序从具体到一般
EXCEPTION_STATUS_CODES = [
    (SessionError, 401),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (GuardViolationError, 409),
    (PipelineBusyError, 409),
    (LLMServiceError, 502),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("--- 应用启动，初始化核心服务 ---")
    settings = get_settings()

    app.state.llm_service = create_llm_service(settings=settings)
    # create async repositories (they perform async file loading)
    app.state.subject_repository = await SubjectRepository.create_repo(
        settings.SUBJECT_STORE_PATH, seed_demo_data=settings.SEED_DEMO_DATA
    )
    app.state.identity_repository = IdentityRepository()

    assessment = AssessmentAgent(
        llm_service=app.state.llm_service,
        agent_name=settings.ASSESSMENT_AGENT_NAME,
        timeout_seconds=settings.LLM_TIMEOUT_SECONDS
    )
    counseling = CounselingAgent(
        llm_service=app.state.llm_service,
        agent_name=settings.COUNSELING_AGENT_NAME,
        timeout_seconds=settings.LLM_TIMEOUT_SECONDS
    )
    synthesizer = ReportSynthesizer(
        llm_service=app.state.llm_service,
        timeout_seconds=settings.LLM_TIMEOUT_SECONDS,
        refine_window=settings.REFINE_WINDOW
    )

    app.state.session_controller = SessionController(
        subject_repository=app.state.subject_repository,
        identity_repository=app.state.identity_repository,
        assessment_agent=assessment,
        counseling_agent=counseling,
        report_synthesizer=synthesizer,
        settings=settings
    )

    logger.info("--- 所有核心服务已准备就绪 (挂载于 app.state) ---")
    yield
    logger.info("--- 应用关闭，正在清理 ---")


app = FastAPI(
    title="安盾心理评估系统",
    lifespan=lifespan
)


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    status_code = 400
    for exc_type, code in EXCEPTION_STATUS_CODES:
        if isinstance(exc, exc_type):
            status_code = code
            break
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


# API路由
app.include_router(auth.router)
app.include_router(session.router)
app.include_router(admin.router)


@app.get("/", tags=["Root"])
def read_root():
    return {"status": "ok", "message": "欢迎使用安盾心理评估后端系统"}
