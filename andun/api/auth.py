# andun/api/auth.py

from fastapi import APIRouter, Depends, HTTPException, status, Request
from fastapi.security import OAuth2PasswordBearer

from andun.business_logic.controllers import SessionController
from andun.core.exceptions import SessionError
from andun.core.security import create_session_token, read_session_token
from andun.models.schemas import Identity, LoginRequest, SessionContext, Token


# --- 从 app.state 获取实例 ---
def get_session_controller(request: Request) -> SessionController:
    return request.app.state.session_controller


# tokenUrl 指的是获取token的接口的相对路径
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="auth/login")


async def get_current_session(
    token: str = Depends(oauth2_scheme),
    controller: SessionController = Depends(get_session_controller)
) -> SessionContext:
    """
    依赖项：验证JWT并返回当前登录会话。
    这是一个“守卫”，保护需要登录才能访问的接口。
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="无效的认证凭证",
        headers={"WWW-Authenticate": "Bearer"},
    )
    claims = read_session_token(token)
    if claims is None:
        raise credentials_exception
    identity_id, session_id = claims

    try:
        ctx = controller.get_session(session_id)
    except SessionError:
        raise credentials_exception

    # 会话与令牌中的身份不一致时按无效处理，保持错误信息模糊
    if ctx.identity.id != identity_id:
        raise credentials_exception
    return ctx


# --- API 路由 ---
router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/login", response_model=Token)
async def login_for_access_token(
    payload: LoginRequest,
    controller: SessionController = Depends(get_session_controller)
):
    """用户登录（按警号匹配），获取JWT"""
    ctx = await controller.login(payload.username)
    if ctx is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="未识别的账号",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_session_token(ctx.identity.id, ctx.session_id)
    return Token(access_token=access_token, token_type="bearer", mode=ctx.mode)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    ctx: SessionContext = Depends(get_current_session),
    controller: SessionController = Depends(get_session_controller)
):
    await controller.logout(ctx)


@router.get("/me", response_model=Identity)
async def read_users_me(ctx: SessionContext = Depends(get_current_session)):
    """获取当前登录身份"""
    return ctx.identity
