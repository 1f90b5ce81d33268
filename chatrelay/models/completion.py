"""
补全接口的请求/响应模型

响应在解码时统一转换为一个带标签的结果类型 CompletionOutcome：
- CompletionSuccess: 成功返回（包含全部候选文本，可能为空）
- CompletionRejected: 服务端返回非 2xx 及错误体
- MalformedResponse: 返回 2xx 但响应体无法解析
- TransportFailure: 网络/超时等传输层失败
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field


# ===== 接口报文 =====

class ChatCompletionRequest(BaseModel):
    model: str
    messages: List[dict]
    max_tokens: int
    temperature: float


class ChoiceMessage(BaseModel):
    content: Optional[str] = None


class Choice(BaseModel):
    message: ChoiceMessage = Field(default_factory=ChoiceMessage)


class ChatCompletionResponse(BaseModel):
    choices: List[Choice] = Field(default_factory=list)


class ErrorDetail(BaseModel):
    message: str = ""
    type: Optional[str] = None


class ErrorPayload(BaseModel):
    error: ErrorDetail


# ===== 解码结果 =====

class CompletionSuccess(BaseModel):
    kind: Literal["success"] = "success"
    choices: List[str] = Field(default_factory=list)


class CompletionRejected(BaseModel):
    kind: Literal["rejected"] = "rejected"
    status_code: int
    error_type: str = "api_error"
    message: str = ""


class MalformedResponse(BaseModel):
    kind: Literal["malformed"] = "malformed"
    status_code: int
    reason: str


class TransportFailure(BaseModel):
    kind: Literal["transport"] = "transport"
    reason: str


CompletionOutcome = Union[CompletionSuccess, CompletionRejected, MalformedResponse, TransportFailure]


__all__ = [
    "ChatCompletionRequest",
    "ChatCompletionResponse",
    "Choice",
    "ChoiceMessage",
    "ErrorDetail",
    "ErrorPayload",
    "CompletionSuccess",
    "CompletionRejected",
    "MalformedResponse",
    "TransportFailure",
    "CompletionOutcome",
]
