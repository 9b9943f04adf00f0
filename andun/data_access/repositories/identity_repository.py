# andun/data_access/repositories/identity_repository.py

from typing import Dict, Iterable, List, Optional, Tuple

from andun.models.schemas import Identity

# (登录账号, 身份)
DEFAULT_ROSTER: List[Tuple[str, Identity]] = [
    ("admin", Identity(id="admin", display_name="系统管理员", role="admin")),
    ("9527", Identity(id="u1", display_name="周星星", role="subject", badge_number="PC9527")),
    ("8848", Identity(id="u2", display_name="陈永仁", role="subject", badge_number="PC8848")),
    ("007", Identity(id="u3", display_name="凌凌漆", role="subject", badge_number="PC007")),
]


class IdentityRepository:
    """登录身份查询：按账号做简单匹配，不做密码校验"""

    def __init__(self, roster: Optional[Iterable[Tuple[str, Identity]]] = None):
        self._by_username: Dict[str, Identity] = dict(roster if roster is not None else DEFAULT_ROSTER)
        self._by_id: Dict[str, Identity] = {identity.id: identity for identity in self._by_username.values()}

    async def resolve(self, login_token: str) -> Optional[Identity]:
        return self._by_username.get((login_token or "").strip())

    async def get(self, identity_id: str) -> Optional[Identity]:
        return self._by_id.get(identity_id)

    async def list_subjects(self) -> List[Identity]:
        return [identity for identity in self._by_id.values() if not identity.is_admin]
