"""
Telegram 渠道模块

提供 Telegram 集成的完整功能:
- TelegramAdapter: 实现BaseChannelAdapter接口
- TelegramClient: Bot API 客户端

使用方式:
    from chatrelay.channels.telegram import TelegramAdapter

    adapter = TelegramAdapter(token="...")
    if adapter.is_configured():
        await adapter.initialize()
        async for message in adapter.updates():
            ...
"""

from chatrelay.channels.telegram.adapter import TelegramAdapter
from chatrelay.channels.telegram.client import TelegramClient, TelegramAPIError

__all__ = [
    "TelegramAdapter",
    "TelegramClient",
    "TelegramAPIError",
]
