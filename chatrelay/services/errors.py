"""
中继错误模型

中继周期内的所有失败都继承自 RelayError，
由 MessageRelay 在边界统一捕获并转换为用户可见的文本。
"""


class RelayError(Exception):
    """
    中继异常基类

    Attributes:
        code: 机器可读错误码（如 "EMPTY_COMPLETION"）
        detail: 内部错误描述（写入日志）
    """

    code = "RELAY_ERROR"

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__(detail or self.code)

    @property
    def user_message(self) -> str:
        """返回给聊天用户的描述"""
        return f"Error: {self.detail or self.code}"


class NotAuthorized(RelayError):
    """用户不在允许名单内"""

    code = "NOT_AUTHORIZED"

    @property
    def user_message(self) -> str:
        return "Sorry, you are not authorized to use this bot."


class TransportError(RelayError):
    """网络层错误（连接失败、超时等）"""

    code = "TRANSPORT_ERROR"


class BackendUnavailable(TransportError):
    """补全服务不可达或超时"""

    code = "BACKEND_UNAVAILABLE"

    @property
    def user_message(self) -> str:
        return "Error: the completion service is unavailable right now. Please try again later."


class BackendRejected(RelayError):
    """补全服务返回结构化错误（限流、非法请求等）"""

    code = "BACKEND_REJECTED"

    def __init__(self, kind: str, message: str, status_code: int = 0):
        self.kind = kind
        self.message = message
        self.status_code = status_code
        super().__init__(f"{kind}: {message}" if message else kind)

    @property
    def user_message(self) -> str:
        if self.message:
            return f"Error: the completion service rejected the request ({self.kind}): {self.message}"
        return f"Error: the completion service rejected the request ({self.kind})."


BackendError = BackendRejected


class MalformedCompletion(BackendRejected):
    """补全服务返回 2xx，但响应体无法解析"""

    code = "MALFORMED_COMPLETION"

    def __init__(self, reason: str, status_code: int = 0):
        super().__init__(kind="invalid_response", message=reason, status_code=status_code)

    @property
    def user_message(self) -> str:
        return "Error: the completion service returned a response that could not be read."


class EmptyCompletion(RelayError):
    """补全服务返回成功但没有任何候选"""

    code = "EMPTY_COMPLETION"

    @property
    def user_message(self) -> str:
        return "Error: no response from the completion service."


class MediaFetchFailed(RelayError):
    """图片引用解析失败"""

    code = "MEDIA_FETCH_FAILED"

    @property
    def user_message(self) -> str:
        return f"Error getting file: {self.detail or 'unknown error'}"


__all__ = [
    "RelayError",
    "NotAuthorized",
    "TransportError",
    "BackendUnavailable",
    "BackendRejected",
    "BackendError",
    "MalformedCompletion",
    "EmptyCompletion",
    "MediaFetchFailed",
]
