"""
Message Relay - 消息中继

核心流程（文本）:
1. 访问控制；拒绝时发送提示并结束（不访问历史）
2. 发送 "Processing..." 占位消息
3. 会话锁内：读取历史快照 → 拼接本轮用户消息（工作副本，不落库）→ 调用补全
4. 成功：append_pair 落库，占位消息替换为回复
5. 失败：历史保持原样，占位消息替换为错误描述

图片消息结构相同，是否写入历史由 ImageHistoryPolicy 决定：
- STATELESS: 单轮图文补全，不读写历史（与早期版本行为一致）
- PERSIST: 图文消息作为普通的一轮对话写入历史

中继周期内的任何异常都在此处捕获，不会传播到分发器。
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union

from chatrelay.channels.base import BaseChannelAdapter, ChannelAdapterError, SentMessage
from chatrelay.models.conversation import History, Message, Role
from chatrelay.services.access_gate import AccessGate
from chatrelay.services.audit_logger import AuditLogger
from chatrelay.services.completion_client import CompletionClient
from chatrelay.services.completion_pool import CompletionPool
from chatrelay.services.errors import MediaFetchFailed, NotAuthorized, RelayError
from chatrelay.services.session_store import ConversationID, SessionStore
from chatrelay.utils.text import preview

logger = logging.getLogger(__name__)

PROCESSING_TEXT = "Processing your message..."
PROCESSING_IMAGE = "Processing your image..."
UNEXPECTED_ERROR_TEXT = "Error: something went wrong while processing your message."


class ImageHistoryPolicy(str, Enum):
    """图片消息的历史策略"""
    STATELESS = "stateless"
    PERSIST = "persist"


@dataclass
class RelayResult:
    """一次中继的投递结果"""
    text: str
    error: Optional[RelayError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class MessageRelay:
    """消息中继编排器"""

    def __init__(
        self,
        store: SessionStore,
        client: CompletionClient,
        channel: BaseChannelAdapter,
        gate: AccessGate,
        pool: Optional[CompletionPool] = None,
        audit: Optional[AuditLogger] = None,
        history_window: int = 0,
        image_policy: Union[ImageHistoryPolicy, str] = ImageHistoryPolicy.STATELESS
    ):
        """
        Args:
            store: 会话存储
            client: 补全客户端
            channel: 投递渠道
            gate: 访问控制
            pool: 补全并发池（默认 8 并发）
            audit: 审计日志（可选）
            history_window: 发送给补全服务的尾部消息数，0 表示全部
            image_policy: 图片消息历史策略
        """
        self.store = store
        self.client = client
        self.channel = channel
        self.gate = gate
        self.pool = pool or CompletionPool(max_concurrency=8)
        self.audit = audit
        self.history_window = history_window
        self.image_policy = ImageHistoryPolicy(image_policy)

    # ===== 对外入口（含投递）=====

    async def check_access(self, conversation_id: ConversationID, user_id: Union[int, str]) -> bool:
        """访问控制；拒绝时发送提示并记录审计日志"""
        if self.gate.allows(user_id):
            return True

        logger.info(f"Access denied for user {user_id} in {conversation_id}")
        await self._send(conversation_id, NotAuthorized().user_message)
        if self.audit:
            await self.audit.log_access_denied(user_id, conversation_id)
        return False

    async def handle_text(
        self,
        conversation_id: ConversationID,
        user_id: Union[int, str],
        text: str
    ) -> RelayResult:
        """处理文本消息（访问控制 → 占位 → 中继 → 编辑占位）"""
        if not await self.check_access(conversation_id, user_id):
            return RelayResult(text=NotAuthorized().user_message, error=NotAuthorized())

        logger.info(f"Processing text message from {user_id} in {conversation_id}: {preview(text)}")
        placeholder = await self._send(conversation_id, PROCESSING_TEXT)

        try:
            reply = await self.relay_text(conversation_id, text)
            result = RelayResult(text=reply)
        except RelayError as e:
            result = await self._on_failure(conversation_id, user_id, e, path="text")
        except Exception as e:
            logger.error(f"Unexpected error relaying text in {conversation_id}: {e}", exc_info=True)
            result = RelayResult(text=UNEXPECTED_ERROR_TEXT, error=RelayError(str(e)))

        await self._deliver(conversation_id, placeholder, result.text)
        return result

    async def handle_image(
        self,
        conversation_id: ConversationID,
        user_id: Union[int, str],
        caption: str,
        media_ref: str
    ) -> RelayResult:
        """处理图片消息（访问控制 → 占位 → 解析媒体 → 中继 → 编辑占位）"""
        if not await self.check_access(conversation_id, user_id):
            return RelayResult(text=NotAuthorized().user_message, error=NotAuthorized())

        logger.info(f"Processing image message from {user_id} in {conversation_id}")
        placeholder = await self._send(conversation_id, PROCESSING_IMAGE)

        try:
            image_url = await self._resolve_media(media_ref)
            reply = await self.relay_image(conversation_id, caption, image_url)
            result = RelayResult(text=reply)
        except RelayError as e:
            result = await self._on_failure(conversation_id, user_id, e, path="image")
        except Exception as e:
            logger.error(f"Unexpected error relaying image in {conversation_id}: {e}", exc_info=True)
            result = RelayResult(text=UNEXPECTED_ERROR_TEXT, error=RelayError(str(e)))

        await self._deliver(conversation_id, placeholder, result.text)
        return result

    # ===== 中继核心（不含投递）=====

    async def relay_text(self, conversation_id: ConversationID, text: str) -> str:
        """
        文本中继周期

        Returns:
            助手回复文本

        Raises:
            RelayError: 补全失败（历史不变）
        """
        return await self._relay_turn(conversation_id, Message.user(text))

    async def relay_image(self, conversation_id: ConversationID, caption: str, image_url: str) -> str:
        """
        图片中继周期（按 image_policy 决定是否进入历史）

        Raises:
            RelayError: 补全失败（历史不变）
        """
        if self.image_policy == ImageHistoryPolicy.STATELESS:
            async with self.pool.acquire():
                return await self.client.complete_with_image(caption, image_url)

        return await self._relay_turn(conversation_id, Message.user_with_image(caption, image_url))

    async def _relay_turn(self, conversation_id: ConversationID, user_msg: Message) -> str:
        async with self.store.lock(conversation_id):
            history = self.store.get(conversation_id)
            working = history + (user_msg,)

            async with self.pool.acquire():
                reply = await self.client.complete(self._window(working))

            # 只有补全完全成功才落库
            self.store.append_pair(conversation_id, user_msg, Message.assistant(reply))

        logger.info(f"Relayed turn in {conversation_id} (history={len(history) + 2} messages)")
        return reply

    def _window(self, working: History) -> History:
        """按 history_window 截取尾部消息，保证以用户消息开头"""
        if self.history_window <= 0 or len(working) <= self.history_window:
            return working
        window = working[-self.history_window:]
        while len(window) > 1 and window[0].role != Role.USER:
            window = window[1:]
        return window

    async def _resolve_media(self, media_ref: str) -> str:
        try:
            return await self.channel.resolve_media_url(media_ref)
        except ChannelAdapterError as e:
            raise MediaFetchFailed(str(e))

    # ===== 投递 =====

    async def _on_failure(
        self,
        conversation_id: ConversationID,
        user_id: Union[int, str],
        error: RelayError,
        path: str
    ) -> RelayResult:
        logger.warning(f"Relay failed in {conversation_id} ({path}): {error.code}: {error.detail}")
        if self.audit:
            await self.audit.log_relay_failure(
                conversation_id=conversation_id,
                user_id=user_id,
                error_code=error.code,
                detail=error.detail,
                path=path
            )
        return RelayResult(text=error.user_message, error=error)

    async def _send(self, conversation_id: ConversationID, text: str) -> Optional[SentMessage]:
        try:
            return await self.channel.send_message(conversation_id, text)
        except ChannelAdapterError as e:
            logger.error(f"Failed to send message to {conversation_id}: {e}")
            return None

    async def _deliver(
        self,
        conversation_id: ConversationID,
        placeholder: Optional[SentMessage],
        text: str
    ) -> None:
        """替换占位消息；占位消息不可用时改为发送新消息"""
        if placeholder is not None:
            try:
                await self.channel.edit_message(placeholder, text)
                return
            except ChannelAdapterError as e:
                logger.warning(f"Failed to edit placeholder in {conversation_id}: {e}, sending instead")
        await self._send(conversation_id, text)


__all__ = [
    "ImageHistoryPolicy",
    "RelayResult",
    "MessageRelay",
    "PROCESSING_TEXT",
    "PROCESSING_IMAGE",
]
