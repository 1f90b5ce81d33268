"""
会话消息数据模型

数据结构设计：
- Role: 消息角色（user / assistant）
- TextBlock / ImageBlock: 多模态内容块
- Message: 一轮对话消息，写入历史后不可变

历史记录本身由 SessionStore 以 tuple 快照形式对外提供。
"""

from enum import Enum
from typing import List, Literal, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class Role(str, Enum):
    """消息角色"""
    USER = "user"
    ASSISTANT = "assistant"


class ImageURL(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str = Field(..., description="图片地址（http(s) 链接或 data URL）")


class TextBlock(BaseModel):
    """文本内容块"""
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str = Field(..., description="文本内容")


class ImageBlock(BaseModel):
    """图片引用内容块"""
    model_config = ConfigDict(frozen=True)

    type: Literal["image_url"] = "image_url"
    image_url: ImageURL = Field(..., description="图片引用")


ContentBlock = Union[TextBlock, ImageBlock]


class Message(BaseModel):
    """
    一轮对话消息

    content 为纯文本，或多模态内容块序列（文本 + 图片引用）。
    """
    model_config = ConfigDict(frozen=True)

    role: Role = Field(..., description="消息角色")
    content: Union[str, Tuple[ContentBlock, ...]] = Field(..., description="消息内容")

    @classmethod
    def user(cls, text: str) -> "Message":
        return cls(role=Role.USER, content=text)

    @classmethod
    def assistant(cls, text: str) -> "Message":
        return cls(role=Role.ASSISTANT, content=text)

    @classmethod
    def user_with_image(cls, caption: str, image_url: str) -> "Message":
        """构造带图片的用户消息（文本块在前，图片块在后）"""
        return cls(
            role=Role.USER,
            content=(
                TextBlock(text=caption),
                ImageBlock(image_url=ImageURL(url=image_url)),
            ),
        )

    def to_payload(self) -> dict:
        """转换为补全接口的 message JSON"""
        if isinstance(self.content, str):
            content = self.content
        else:
            content = [block.model_dump() for block in self.content]
        return {"role": self.role.value, "content": content}


History = Tuple[Message, ...]


def history_to_payload(history: Sequence[Message]) -> List[dict]:
    return [message.to_payload() for message in history]


__all__ = [
    "Role",
    "ImageURL",
    "TextBlock",
    "ImageBlock",
    "ContentBlock",
    "Message",
    "History",
    "history_to_payload",
]
