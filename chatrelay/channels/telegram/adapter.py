"""
Telegram 渠道适配器

实现BaseChannelAdapter接口,提供:
1. 更新拉取(getUpdates 长轮询 → ChannelMessage)
2. 消息发送与原地编辑(超长文本自动切分)
3. 媒体引用解析(file_id → 文件链接或 data URL)
4. 配置检测
"""

import asyncio
import base64
import logging
import mimetypes
from typing import Any, AsyncIterator, Dict, List, Optional, Union

import httpx

from chatrelay.channels.base import (
    BaseChannelAdapter,
    ChannelMediaError,
    ChannelMessage,
    ChannelMessageError,
    ChannelNotConfiguredError,
    ChannelUser,
    MessageType,
    SentMessage,
)
from chatrelay.channels.telegram.client import TelegramAPIError, TelegramClient
from chatrelay.config.settings import Settings
from chatrelay.utils.text import split_text

logger = logging.getLogger(__name__)

# 轮询失败后的最大退避时间(秒)
MAX_POLL_BACKOFF = 30


class TelegramAdapter(BaseChannelAdapter):
    """Telegram 渠道适配器"""

    def __init__(
        self,
        token: Optional[str],
        api_base_url: str = "https://api.telegram.org",
        poll_timeout: int = 60,
        inline_media: bool = False,
        client: Optional[TelegramClient] = None
    ):
        """
        初始化适配器

        Args:
            token: Bot Token
            api_base_url: Bot API 基础URL
            poll_timeout: 长轮询等待秒数
            inline_media: 是否把图片下载后转为 data URL(避免把带 Token 的链接交给补全服务)
            client: 可注入的 TelegramClient(测试用)
        """
        super().__init__("telegram")
        self.token = token or ""
        self.api_base_url = api_base_url
        self.poll_timeout = poll_timeout
        self.inline_media = inline_media

        self.bot_username: Optional[str] = None
        self._offset: Optional[int] = None
        self._polling = False
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "TelegramAdapter":
        return cls(
            token=settings.TELEGRAM_BOT_TOKEN,
            api_base_url=settings.TELEGRAM_API_BASE_URL,
            poll_timeout=settings.TELEGRAM_POLL_TIMEOUT,
            inline_media=settings.TELEGRAM_INLINE_MEDIA,
        )

    @property
    def client(self) -> TelegramClient:
        """获取API客户端(懒加载)"""
        if self._client is None:
            if not self.is_configured():
                raise ChannelNotConfiguredError(
                    f"{self.channel_name} is not configured. Please set TELEGRAM_BOT_TOKEN"
                )
            self._client = TelegramClient(token=self.token, api_base_url=self.api_base_url)
            logger.info("Telegram API client initialized")

        return self._client

    def is_configured(self) -> bool:
        """检查是否已配置"""
        return bool(self.token)

    async def initialize(self) -> None:
        """验证 Token 并记录 Bot 用户名"""
        if self._initialized:
            logger.warning(f"{self.channel_name} adapter already initialized")
            return

        me = await self.client.get_me()
        self.bot_username = me.get("username")
        logger.info(f"Authorized on account {self.bot_username}")
        self._initialized = True

    async def close(self) -> None:
        self._polling = False
        if self._client is not None:
            await self._client.close()
        await super().close()

    # ===== 出站 =====

    async def send_message(
        self,
        chat_id: Union[int, str],
        content: str,
        keyboard: Optional[List[List[str]]] = None
    ) -> SentMessage:
        """
        发送文本消息(超长文本切分为多条,返回第一条的句柄)

        只有第一条发送失败时抛出 ChannelMessageError;后续分段失败只记录日志。
        """
        reply_markup = self._build_keyboard(keyboard) if keyboard else None
        chunks = split_text(content)

        try:
            first = await self.client.send_message(chat_id, chunks[0], reply_markup=reply_markup)
        except (TelegramAPIError, httpx.HTTPError) as e:
            logger.error(f"Failed to send message to {chat_id}: {e}")
            raise ChannelMessageError(f"Failed to send message: {e}")

        await self._send_overflow(chat_id, chunks[1:])
        return SentMessage(chat_id=chat_id, message_id=first["message_id"])

    async def edit_message(self, handle: SentMessage, content: str) -> None:
        """
        原地编辑消息;超出长度的部分作为后续消息发送

        只有原地编辑失败时抛出 ChannelMessageError,调用方可以据此改为重新发送;
        编辑成功后分段发送失败只记录日志,避免第一段被重复投递。
        """
        chunks = split_text(content)

        try:
            await self.client.edit_message_text(handle.chat_id, handle.message_id, chunks[0])
        except TelegramAPIError as e:
            # 内容未变化时 Telegram 返回 400,视为成功
            if "message is not modified" not in e.description:
                logger.error(f"Failed to edit message {handle.message_id} in {handle.chat_id}: {e}")
                raise ChannelMessageError(f"Failed to edit message: {e}")
        except httpx.HTTPError as e:
            logger.error(f"Failed to edit message {handle.message_id} in {handle.chat_id}: {e}")
            raise ChannelMessageError(f"Failed to edit message: {e}")

        await self._send_overflow(handle.chat_id, chunks[1:])

    async def _send_overflow(self, chat_id: Union[int, str], chunks: List[str]) -> None:
        """按顺序发送剩余分段;某段失败后停止,不打乱顺序"""
        for index, chunk in enumerate(chunks):
            try:
                await self.client.send_message(chat_id, chunk)
            except (TelegramAPIError, httpx.HTTPError) as e:
                logger.error(
                    f"Failed to send part {index + 2} of a long message to {chat_id}: {e}, "
                    f"{len(chunks) - index} parts dropped"
                )
                return

    @staticmethod
    def _build_keyboard(keyboard: List[List[str]]) -> Dict[str, Any]:
        return {
            "keyboard": [[{"text": label} for label in row] for row in keyboard],
            "resize_keyboard": True,
        }

    # ===== 媒体 =====

    async def resolve_media_url(self, media_ref: str) -> str:
        """
        解析 file_id

        Returns:
            文件链接;inline_media 开启时返回 base64 data URL
        """
        try:
            file_info = await self.client.get_file(media_ref)
            file_path = file_info.get("file_path")
            if not file_path:
                raise ChannelMediaError(f"file {media_ref} has no downloadable path")

            if not self.inline_media:
                return self.client.file_url(file_path)

            content = await self.client.download_file(file_path)
        except (TelegramAPIError, httpx.HTTPError) as e:
            logger.error(f"Failed to resolve media {media_ref}: {e}")
            raise ChannelMediaError(str(e))

        mime_type = mimetypes.guess_type(file_path)[0] or "image/jpeg"
        encoded = base64.b64encode(content).decode("ascii")
        return f"data:{mime_type};base64,{encoded}"

    # ===== 入站 =====

    async def updates(self) -> AsyncIterator[ChannelMessage]:
        """
        长轮询产出入站消息

        拉取失败时按指数退避重试,不会中断迭代;调用 stop_polling() 后结束。
        """
        self._polling = True
        backoff = 1

        while self._polling:
            try:
                raw_updates = await self.client.get_updates(offset=self._offset, timeout=self.poll_timeout)
                backoff = 1
            except (TelegramAPIError, httpx.HTTPError) as e:
                logger.error(f"Failed to get updates: {e}, retrying in {backoff}s")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, MAX_POLL_BACKOFF)
                continue

            for update in raw_updates:
                self._offset = update["update_id"] + 1
                message = self.parse_update(update)
                if message is not None:
                    yield message

    def stop_polling(self) -> None:
        self._polling = False

    def parse_update(self, update: Dict[str, Any]) -> Optional[ChannelMessage]:
        """
        将 Telegram update 转换为 ChannelMessage

        Returns:
            ChannelMessage;不含 message 的更新(编辑、回调等)返回 None
        """
        message = update.get("message")
        if not message:
            return None

        sender = message.get("from") or {}
        chat = message.get("chat") or {}
        if "id" not in chat:
            logger.warning(f"Update {update.get('update_id')} has no chat id, ignored")
            return None

        user = ChannelUser(
            user_id=sender.get("id", chat["id"]),
            username=sender.get("username")
        )
        channel_msg = ChannelMessage(
            message_id=message.get("message_id", 0),
            chat_id=chat["id"],
            user=user,
            msg_type=MessageType.OTHER,
            timestamp=message.get("date", 0),
            raw_data=update
        )

        text = message.get("text") or ""
        command = self._extract_command(message)
        if command is not None:
            channel_msg.msg_type = MessageType.COMMAND
            channel_msg.command, channel_msg.command_args = command
            channel_msg.content = text
        elif text:
            channel_msg.msg_type = MessageType.TEXT
            channel_msg.content = text
        elif message.get("photo"):
            # 取最大尺寸的图片
            channel_msg.msg_type = MessageType.IMAGE
            channel_msg.media_ref = message["photo"][-1]["file_id"]
            channel_msg.caption = message.get("caption") or ""
        elif self._is_image_document(message):
            channel_msg.msg_type = MessageType.IMAGE
            channel_msg.media_ref = message["document"]["file_id"]
            channel_msg.caption = message.get("caption") or ""

        return channel_msg

    @staticmethod
    def _extract_command(message: Dict[str, Any]):
        """解析位于消息开头的 bot_command,返回 (命令名, 参数) 或 None"""
        text = message.get("text") or ""
        for entity in message.get("entities") or []:
            if entity.get("type") == "bot_command" and entity.get("offset") == 0:
                length = entity.get("length", len(text))
                name = text[1:length].split("@", 1)[0].lower()
                return name, text[length:].strip()
        return None

    @staticmethod
    def _is_image_document(message: Dict[str, Any]) -> bool:
        document = message.get("document") or {}
        return bool(document.get("file_id")) and str(document.get("mime_type", "")).startswith("image/")
