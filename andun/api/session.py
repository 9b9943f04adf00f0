# andun/api/session.py

from fastapi import APIRouter, Depends, HTTPException, status

from andun.business_logic.controllers import SessionController
from andun.models.schemas import (
    ChatRequest,
    ChatResponse,
    DocumentUpload,
    FeedbackRequest,
    Message,
    NavigateRequest,
    SessionContext,
    SessionSettings,
    SettingsUpdate,
    StructuredMemory,
    SubjectView,
    UploadedDocument,
)
from .auth import get_current_session, get_session_controller

router = APIRouter(prefix="/session", tags=["Session"])


def _unprocessable(e: ValueError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


async def _chat_response(controller: SessionController, ctx: SessionContext, reply: Message) -> ChatResponse:
    view = await controller.view(ctx)
    return ChatResponse(reply=reply, turn_count=view.record.turn_count if view.record else 0)


@router.get("", response_model=SubjectView)
async def get_session_view(
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    """当前会话视图：模式、对象档案以及各按钮是否可用"""
    return await controller.view(ctx)


@router.post("/navigate", response_model=SubjectView)
async def navigate(
    payload: NavigateRequest,
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    await controller.navigate(ctx, payload.mode)
    return await controller.view(ctx)


@router.post("/end", response_model=SubjectView)
async def end_session(
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    await controller.end_session(ctx)
    return await controller.view(ctx)


@router.post("/assessment/messages", response_model=ChatResponse)
async def send_assessment_message(
    payload: ChatRequest,
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    try:
        reply = await controller.send_assessment_message(ctx, payload.text)
    except ValueError as e:
        raise _unprocessable(e)
    return await _chat_response(controller, ctx, reply)


@router.post("/report", response_model=StructuredMemory, response_model_by_alias=True)
async def generate_report(
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    """生成（或刷新）评估报告"""
    memory = await controller.generate_report(ctx)
    if memory is None:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="生成报告失败，请重试")
    return memory


@router.post("/counseling", response_model=SubjectView)
async def enter_counseling(
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    await controller.enter_counseling(ctx)
    return await controller.view(ctx)


@router.post("/counseling/messages", response_model=ChatResponse)
async def send_counseling_message(
    payload: ChatRequest,
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    try:
        reply = await controller.send_counseling_message(ctx, payload.text)
    except ValueError as e:
        raise _unprocessable(e)
    return await _chat_response(controller, ctx, reply)


@router.post("/counseling/refresh", response_model=StructuredMemory, response_model_by_alias=True)
async def refresh_memory(
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    """根据疏导对话同步更新档案"""
    memory = await controller.refresh_memory(ctx)
    if memory is None:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="档案同步失败，请重试")
    return memory


@router.post("/counseling/documents", response_model=UploadedDocument, status_code=status.HTTP_201_CREATED)
async def upload_document(
    payload: DocumentUpload,
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    try:
        return await controller.upload_document(ctx, payload.filename, payload.content)
    except ValueError as e:
        raise _unprocessable(e)


@router.post("/counseling/messages/{message_id}/feedback", response_model=Message)
async def set_feedback(
    message_id: str,
    payload: FeedbackRequest,
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    return await controller.set_feedback(ctx, message_id, payload.feedback)


@router.get("/settings", response_model=SessionSettings)
async def read_settings(
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    return controller.session_settings(ctx)


@router.put("/settings", response_model=SessionSettings)
async def update_settings(
    payload: SettingsUpdate,
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    """修改本会话使用的模型服务商、API Key、模型和智能体名字"""
    try:
        return await controller.update_settings(ctx, **payload.model_dump())
    except ValueError as e:
        raise _unprocessable(e)
