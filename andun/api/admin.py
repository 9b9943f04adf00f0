# andun/api/admin.py

from typing import List

from fastapi import APIRouter, Depends

from andun.business_logic.controllers import SessionController
from andun.models.schemas import SessionContext, SubjectStat, SubjectView
from .auth import get_current_session, get_session_controller

router = APIRouter(prefix="/admin", tags=["Admin"])


@router.get("/subjects", response_model=List[SubjectStat])
async def list_subjects(
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    """指挥中心：列出所有警员及其风险等级"""
    return await controller.dashboard(ctx)


@router.post("/subjects/{subject_id}/view", response_model=SubjectView)
async def view_subject(
    subject_id: str,
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    await controller.view_subject(ctx, subject_id)
    return await controller.view(ctx)


@router.post("/dashboard", response_model=SubjectView)
async def back_to_dashboard(
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    await controller.back_to_dashboard(ctx)
    return await controller.view(ctx)
