# andun/models/phase_schemas.py
from enum import Enum
from typing import Dict, FrozenSet


class AppMode(str, Enum):
    """会话所处的界面阶段"""
    LOGIN = "LOGIN"                          # 登录
    ADMIN_DASHBOARD = "ADMIN_DASHBOARD"      # 指挥中心（管理员）
    ASSESSMENT = "ASSESSMENT"                # 心理状态评估对话
    REPORT = "REPORT"                        # 评估报告
    COUNSELING = "COUNSELING"                # 心理疏导对话


# 对象视图内（侧边栏）允许的跳转；报告生成、进入疏导等带守卫的转换由控制器单独校验
ALLOWED_NAVIGATION: Dict[AppMode, FrozenSet[AppMode]] = {
    AppMode.ASSESSMENT: frozenset({AppMode.REPORT, AppMode.COUNSELING}),
    AppMode.REPORT: frozenset({AppMode.ASSESSMENT, AppMode.COUNSELING}),
    AppMode.COUNSELING: frozenset({AppMode.ASSESSMENT, AppMode.REPORT}),
}

SUBJECT_MODES: FrozenSet[AppMode] = frozenset({AppMode.ASSESSMENT, AppMode.REPORT, AppMode.COUNSELING})
