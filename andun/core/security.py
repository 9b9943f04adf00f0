# andun/core/security.py

from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

from jose import JWTError, jwt

from .config import settings  # 从我们自己的配置模块导入


# 登录只按警号匹配身份，不做密码校验。
# 令牌绑定到一次会话：sub 为身份ID，sid 为会话ID，退出登录后会话失效，令牌随之作废。
def create_session_token(identity_id: str, session_id: str, expires_delta: Optional[timedelta] = None) -> str:
    """
    为登录会话签发访问令牌 (JWT)。

    Args:
        identity_id: 登录身份ID。
        session_id: 会话ID。
        expires_delta: 令牌的过期时间增量。如果为None，则使用配置中的默认值。
    """
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    claims = {"sub": identity_id, "sid": session_id, "exp": expire}
    return jwt.encode(claims, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def read_session_token(token: str) -> Optional[Tuple[str, str]]:
    """
    校验令牌并取出 (身份ID, 会话ID)。

    签名不匹配、已过期或缺少任一字段时返回None。
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError:
        return None

    identity_id, session_id = payload.get("sub"), payload.get("sid")
    if not identity_id or not session_id:
        return None
    return identity_id, session_id
