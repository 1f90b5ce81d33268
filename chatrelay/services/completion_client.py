"""
Completion Client - 补全服务客户端

负责：
1. 将会话历史转换为 OpenAI 兼容的 /chat/completions 请求
2. 调用 HTTP 接口（整体调用受超时约束）
3. 将响应解码为带标签的 CompletionOutcome
4. 把结果映射为文本或领域异常

客户端本身无状态，不做历史截断（窗口策略由调用方决定）。
"""

import asyncio
import json
import logging
from typing import Optional, Sequence

import httpx
from pydantic import ValidationError

from chatrelay.config.settings import Settings
from chatrelay.models.completion import (
    ChatCompletionRequest,
    ChatCompletionResponse,
    CompletionOutcome,
    CompletionRejected,
    CompletionSuccess,
    ErrorPayload,
    MalformedResponse,
    TransportFailure,
)
from chatrelay.models.conversation import Message, history_to_payload
from chatrelay.services.errors import (
    BackendRejected,
    BackendUnavailable,
    EmptyCompletion,
    MalformedCompletion,
)

logger = logging.getLogger(__name__)


def decode_response(response: httpx.Response) -> CompletionOutcome:
    """
    将 HTTP 响应解码为 CompletionOutcome

    - 2xx: 解析 choices，返回 CompletionSuccess（choices 可能为空）；响应体无法解析时返回 MalformedResponse
    - 非 2xx: 优先解析 {"error": {"message", "type"}}，否则使用原始响应体
    """
    if response.is_success:
        try:
            parsed = ChatCompletionResponse.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            return MalformedResponse(
                status_code=response.status_code,
                reason=f"malformed response body: {e}",
            )
        return CompletionSuccess(
            choices=[choice.message.content or "" for choice in parsed.choices]
        )

    try:
        payload = ErrorPayload.model_validate(response.json())
        error_type = payload.error.type or "api_error"
        message = payload.error.message
    except (ValueError, ValidationError):
        error_type = "http_error"
        message = response.text[:500]

    return CompletionRejected(
        status_code=response.status_code,
        error_type=error_type,
        message=message,
    )


def resolve_outcome(outcome: CompletionOutcome) -> str:
    """把解码结果映射为第一条候选文本，失败时抛出领域异常"""
    if isinstance(outcome, TransportFailure):
        raise BackendUnavailable(outcome.reason)
    if isinstance(outcome, CompletionRejected):
        raise BackendRejected(
            kind=outcome.error_type,
            message=outcome.message,
            status_code=outcome.status_code,
        )
    if isinstance(outcome, MalformedResponse):
        raise MalformedCompletion(outcome.reason, status_code=outcome.status_code)
    if not outcome.choices:
        raise EmptyCompletion("no choices in completion response")
    # content 为 null（拒答、工具调用）或空白时同样视为没有回复
    text = outcome.choices[0]
    if not text.strip():
        raise EmptyCompletion("first choice has no text content")
    return text


class CompletionClient:
    """
    OpenAI 兼容补全客户端

    - complete(history): 携带完整历史发起补全
    - complete_with_image(caption, image_url): 单轮图文补全（不依赖历史）
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        base_url: str = "https://api.openai.com/v1",
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            api_key: 补全服务密钥
            model: 模型名
            max_tokens: 单次回复最大 token 数
            temperature: 采样温度
            base_url: 接口根地址
            timeout: 整体调用超时（秒）
            http_client: 可注入的 httpx.AsyncClient（测试用）
        """
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=httpx.Timeout(timeout))

    @classmethod
    def from_settings(cls, settings: Settings) -> "CompletionClient":
        return cls(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL,
            max_tokens=settings.MAX_TOKENS,
            temperature=settings.TEMPERATURE,
            base_url=settings.OPENAI_BASE_URL,
            timeout=settings.COMPLETION_TIMEOUT,
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def build_request(self, messages: Sequence[Message]) -> dict:
        """构造请求 JSON（历史原样携带）"""
        request = ChatCompletionRequest(
            model=self.model,
            messages=history_to_payload(messages),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        return request.model_dump()

    async def complete(self, history: Sequence[Message]) -> str:
        """
        基于完整历史发起补全

        Returns:
            第一条候选文本

        Raises:
            BackendUnavailable: 网络错误或超时
            BackendRejected: 服务端返回错误
            EmptyCompletion: 没有任何候选
        """
        outcome = await self.request(history)
        return resolve_outcome(outcome)

    async def complete_with_image(self, caption: str, image_url: str) -> str:
        """发起单轮图文补全"""
        outcome = await self.request([Message.user_with_image(caption, image_url)])
        return resolve_outcome(outcome)

    async def request(self, messages: Sequence[Message]) -> CompletionOutcome:
        """发送请求并返回解码结果（不抛出传输层异常）"""
        payload = self.build_request(messages)
        logger.debug(f"Sending completion request: {json.dumps(payload, ensure_ascii=False)}")

        try:
            response = await asyncio.wait_for(self._post(payload), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Completion request timed out after {self.timeout}s")
            return TransportFailure(reason=f"request timed out after {self.timeout}s")
        except httpx.RequestError as e:
            # 网络错误：DNS 失败、连接超时等
            logger.warning(f"Completion request failed: {type(e).__name__}: {e}")
            return TransportFailure(reason=f"{type(e).__name__}: {e}")

        outcome = decode_response(response)
        if isinstance(outcome, CompletionRejected):
            logger.warning(
                f"Completion rejected (status={outcome.status_code}, "
                f"type={outcome.error_type}): {outcome.message}"
            )
        elif isinstance(outcome, MalformedResponse):
            logger.warning(f"Unreadable completion response (status={outcome.status_code}): {outcome.reason}")
        return outcome

    async def _post(self, payload: dict) -> httpx.Response:
        return await self._client.post(
            f"{self.base_url}/chat/completions",
            json=payload,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )


__all__ = [
    "CompletionClient",
    "decode_response",
    "resolve_outcome",
]
