# andun/core/exceptions.py

class AppException(Exception):
    """应用中所有自定义异常的基类。"""
    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class SessionError(AppException):
    """
    会话不存在或已失效。
    """
    pass


class PermissionDeniedError(AppException):
    """
    当前身份无权执行该操作，例如非管理员访问指挥中心。
    """
    pass


class GuardViolationError(AppException):
    """
    流程守卫不允许的状态转换。
    例如，评估对话不足3轮时请求生成报告。
    """
    pass


class PipelineBusyError(AppException):
    """同一对话仍有未完成的请求时再次提交。"""
    pass


class LLMServiceError(AppException):
    """模型服务调用失败（网络、限流、响应格式错误等）。"""
    pass


class LLMConfigurationError(LLMServiceError):
    """模型服务配置缺失，例如未提供API Key。"""
    pass


class NotFoundError(AppException):
    """请求的对象或消息不存在。"""
    pass
