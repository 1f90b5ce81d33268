"""
Telegram Bot API 客户端

封装 Bot API 调用,负责:
1. 长轮询拉取更新(getUpdates)
2. 消息发送与编辑(sendMessage / editMessageText)
3. 文件信息查询与下载(getFile / file link)
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Union

import httpx

logger = logging.getLogger(__name__)


class TelegramAPIError(Exception):
    """Telegram Bot API 错误"""

    def __init__(self, error_code: int, description: str, retry_after: Optional[int] = None):
        self.error_code = error_code
        self.description = description
        self.retry_after = retry_after
        super().__init__(f"Telegram API Error {error_code}: {description}")


class TelegramClient:
    """Telegram Bot API 客户端"""

    def __init__(
        self,
        token: str,
        api_base_url: str = "https://api.telegram.org",
        max_retries: int = 3,
        request_timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        初始化客户端

        Args:
            token: Bot Token
            api_base_url: API基础URL
            max_retries: 网络错误/限流时的最大尝试次数
            request_timeout: 普通请求超时时间(秒)
            http_client: 可注入的 httpx.AsyncClient(测试用)
        """
        self.token = token
        self.api_base_url = api_base_url.rstrip("/")
        self.max_retries = max_retries
        self.request_timeout = request_timeout

        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    @property
    def method_base_url(self) -> str:
        return f"{self.api_base_url}/bot{self.token}"

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _call(
        self,
        method: str,
        payload: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> Any:
        """
        带重试的 API 调用

        网络错误按指数退避重试;429 按服务端给出的 retry_after 等待后重试;
        其他 API 错误直接抛出 TelegramAPIError。
        """
        url = f"{self.method_base_url}/{method}"
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_retries):
            try:
                response = await self._client.post(
                    url,
                    json=payload or {},
                    timeout=timeout or self.request_timeout
                )
                data = response.json()
            except httpx.RequestError as e:
                last_exception = e
                logger.warning(f"Telegram {method} failed (attempt {attempt + 1}/{self.max_retries}): {e}")
                if attempt < self.max_retries - 1:
                    await asyncio.sleep(2 ** attempt)  # 指数退避
                continue
            except ValueError:
                raise TelegramAPIError(response.status_code, f"non-JSON response: {response.text[:200]}")

            if data.get("ok"):
                return data.get("result")

            error_code = data.get("error_code", response.status_code)
            description = data.get("description", "Unknown error")
            retry_after = (data.get("parameters") or {}).get("retry_after")

            # 限流:等待后重试
            if error_code == 429 and retry_after and attempt < self.max_retries - 1:
                logger.warning(f"Telegram rate limit on {method}, retrying after {retry_after}s")
                await asyncio.sleep(retry_after)
                continue

            raise TelegramAPIError(error_code, description, retry_after)

        raise TelegramAPIError(0, f"{method} failed after {self.max_retries} attempts: {last_exception}")

    async def get_me(self) -> Dict[str, Any]:
        """获取 Bot 信息(用于验证 Token)"""
        return await self._call("getMe")

    async def get_updates(self, offset: Optional[int] = None, timeout: int = 60) -> List[Dict[str, Any]]:
        """
        长轮询拉取更新

        Args:
            offset: 第一个未确认的 update_id
            timeout: 长轮询等待秒数
        """
        payload: Dict[str, Any] = {"timeout": timeout, "allowed_updates": ["message"]}
        if offset is not None:
            payload["offset"] = offset
        # HTTP 超时需要大于长轮询时长
        return await self._call("getUpdates", payload, timeout=timeout + 10)

    async def send_message(
        self,
        chat_id: Union[int, str],
        text: str,
        reply_markup: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """发送文本消息"""
        payload: Dict[str, Any] = {"chat_id": chat_id, "text": text}
        if reply_markup:
            payload["reply_markup"] = reply_markup
        return await self._call("sendMessage", payload)

    async def edit_message_text(
        self,
        chat_id: Union[int, str],
        message_id: Union[int, str],
        text: str
    ) -> Any:
        """编辑已发送消息的文本"""
        return await self._call(
            "editMessageText",
            {"chat_id": chat_id, "message_id": message_id, "text": text}
        )

    async def get_file(self, file_id: str) -> Dict[str, Any]:
        """查询文件信息(含 file_path)"""
        return await self._call("getFile", {"file_id": file_id})

    def file_url(self, file_path: str) -> str:
        """构造文件下载地址(包含 Bot Token)"""
        return f"{self.api_base_url}/file/bot{self.token}/{file_path}"

    async def download_file(self, file_path: str) -> bytes:
        """下载文件内容"""
        response = await self._client.get(self.file_url(file_path), timeout=self.request_timeout)
        response.raise_for_status()
        return response.content
