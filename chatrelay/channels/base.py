"""
渠道抽象层基类

定义统一的消息接口,屏蔽不同聊天平台的API差异。
中继核心只依赖这里的能力:
1. updates(): 按顺序产出入站消息
2. send_message(): 发送文本,返回消息句柄
3. edit_message(): 原地编辑已发送的消息
4. resolve_media_url(): 将媒体引用解析为可访问的地址
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class MessageType(str, Enum):
    """入站消息类型枚举"""
    TEXT = "text"
    IMAGE = "image"
    COMMAND = "command"
    OTHER = "other"  # 贴纸、语音等暂不处理的消息


class ChannelUser(BaseModel):
    """渠道用户模型"""
    user_id: Union[int, str] = Field(..., description="用户在渠道内的唯一标识")
    username: Optional[str] = Field(None, description="用户名")


class ChannelMessage(BaseModel):
    """渠道消息模型 - 统一的入站事件格式"""
    message_id: Union[int, str] = Field(..., description="消息唯一标识")
    chat_id: Union[int, str] = Field(..., description="会话ID(即 conversation_id)")
    user: ChannelUser = Field(..., description="发送消息的用户")
    msg_type: MessageType = Field(MessageType.TEXT, description="消息类型")
    content: str = Field("", description="消息文本内容")
    timestamp: int = Field(default_factory=lambda: int(datetime.now().timestamp()), description="消息时间戳(秒)")

    # 可选字段
    command: Optional[str] = Field(None, description="命令名(不含前导 /)")
    command_args: str = Field("", description="命令参数")
    media_ref: Optional[str] = Field(None, description="媒体引用(平台文件ID)")
    caption: str = Field("", description="媒体附带的说明文字")
    raw_data: Dict[str, Any] = Field(default_factory=dict, description="原始消息数据(保留平台特定信息)")


class SentMessage(BaseModel):
    """已发送消息的句柄(用于后续编辑)"""
    chat_id: Union[int, str] = Field(..., description="会话ID")
    message_id: Union[int, str] = Field(..., description="平台返回的消息ID")


class BaseChannelAdapter(ABC):
    """
    渠道适配器抽象基类

    所有聊天平台适配器必须继承此类并实现所有抽象方法。
    """

    def __init__(self, channel_name: str):
        """
        初始化适配器

        Args:
            channel_name: 渠道名称(如 telegram)
        """
        self.channel_name = channel_name
        self._initialized = False

    @abstractmethod
    async def send_message(
        self,
        chat_id: Union[int, str],
        content: str,
        keyboard: Optional[List[List[str]]] = None
    ) -> SentMessage:
        """
        发送文本消息

        Args:
            chat_id: 目标会话ID
            content: 消息内容
            keyboard: 可选的回复键盘(按行排列的按钮文字)

        Returns:
            SentMessage: 可用于编辑的消息句柄

        Raises:
            ChannelMessageError: 发送失败
        """
        pass

    @abstractmethod
    async def edit_message(self, handle: SentMessage, content: str) -> None:
        """
        原地替换已发送消息的文本

        Raises:
            ChannelMessageError: 原地编辑失败(此时原消息内容未变,调用方可改为重新发送)
        """
        pass

    @abstractmethod
    async def resolve_media_url(self, media_ref: str) -> str:
        """
        将媒体引用解析为补全服务可访问的地址

        Raises:
            ChannelMediaError: 解析失败
        """
        pass

    @abstractmethod
    def updates(self) -> AsyncIterator[ChannelMessage]:
        """按到达顺序产出入站消息(异步迭代器)"""
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        """
        检查渠道是否已配置必要的凭据

        Returns:
            bool: 是否已配置
        """
        pass

    async def initialize(self) -> None:
        """
        初始化适配器(可选)

        用于执行一次性初始化操作,如验证凭据。
        """
        if self._initialized:
            logger.warning(f"{self.channel_name} adapter already initialized")
            return

        logger.info(f"Initializing {self.channel_name} adapter...")
        self._initialized = True

    def stop_polling(self) -> None:
        """通知 updates() 在当前批次后结束(可选)"""
        pass

    async def close(self) -> None:
        """释放底层连接(可选)"""
        self._initialized = False


class ChannelAdapterError(Exception):
    """渠道适配器异常基类"""
    pass


class ChannelNotConfiguredError(ChannelAdapterError):
    """渠道未配置异常"""
    pass


class ChannelMessageError(ChannelAdapterError):
    """渠道消息错误异常"""
    pass


class ChannelMediaError(ChannelAdapterError):
    """媒体引用解析失败异常"""
    pass
