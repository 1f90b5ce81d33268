"""
渠道适配器模块

提供统一的消息接口,当前支持:
- Telegram Bot API

使用方式:
    from chatrelay.channels.telegram import TelegramAdapter

    adapter = TelegramAdapter(token="...")

    # 发送占位消息并原地编辑
    handle = await adapter.send_message(chat_id, "Processing your message...")
    await adapter.edit_message(handle, "Hello!")
"""

from chatrelay.channels.base import (
    # 抽象基类
    BaseChannelAdapter,

    # 数据模型
    ChannelMessage,
    ChannelUser,
    SentMessage,

    # 枚举类型
    MessageType,

    # 异常类
    ChannelAdapterError,
    ChannelNotConfiguredError,
    ChannelMessageError,
    ChannelMediaError,
)

__all__ = [
    # 抽象基类
    "BaseChannelAdapter",

    # 数据模型
    "ChannelMessage",
    "ChannelUser",
    "SentMessage",

    # 枚举类型
    "MessageType",

    # 异常类
    "ChannelAdapterError",
    "ChannelNotConfiguredError",
    "ChannelMessageError",
    "ChannelMediaError",
]
