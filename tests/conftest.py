"""
测试公共组件

- MockChannel: 记录发送/编辑的内存渠道
- FakeCompletionClient: 可编排回复、错误和延迟的补全客户端
"""

import asyncio
import os
import sys
from typing import Dict, List, Optional

import pytest

# 添加项目根目录到 path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from chatrelay.channels.base import (
    BaseChannelAdapter,
    ChannelMediaError,
    ChannelMessage,
    ChannelMessageError,
    SentMessage,
)
from chatrelay.models.conversation import Message
from chatrelay.services.access_gate import AccessGate
from chatrelay.services.completion_pool import CompletionPool
from chatrelay.services.message_relay import MessageRelay
from chatrelay.services.session_store import SessionStore


# ==================== Mock 渠道 ====================

class MockChannel(BaseChannelAdapter):
    """用于测试的内存渠道"""

    def __init__(
        self,
        incoming: Optional[List[ChannelMessage]] = None,
        media: Optional[Dict[str, str]] = None,
        fail_edit: bool = False
    ):
        super().__init__("mock")
        self.incoming = list(incoming or [])
        self.media = media or {}
        self.fail_edit = fail_edit
        self.sent: List[dict] = []
        self.edits: List[dict] = []

    async def send_message(self, chat_id, content, keyboard=None):
        self.sent.append({"chat_id": chat_id, "content": content, "keyboard": keyboard})
        return SentMessage(chat_id=chat_id, message_id=len(self.sent))

    async def edit_message(self, handle, content):
        if self.fail_edit:
            raise ChannelMessageError("edit failed")
        self.edits.append({"chat_id": handle.chat_id, "message_id": handle.message_id, "content": content})

    async def resolve_media_url(self, media_ref):
        if media_ref not in self.media:
            raise ChannelMediaError(f"file {media_ref} not found")
        return self.media[media_ref]

    async def updates(self):
        for message in self.incoming:
            yield message

    def is_configured(self):
        return True

    def texts_for(self, chat_id) -> List[str]:
        """某个会话收到的全部可见文本（发送 + 编辑，按发生顺序近似）"""
        sent = [m["content"] for m in self.sent if m["chat_id"] == chat_id]
        edited = [m["content"] for m in self.edits if m["chat_id"] == chat_id]
        return sent + edited


# ==================== Fake 补全客户端 ====================

class FakeCompletionClient:
    """可编排的补全客户端"""

    def __init__(self, replies: Optional[List[str]] = None, error: Optional[Exception] = None, delay: float = 0):
        self.replies = list(replies or [])
        self.error = error
        self.delay = delay
        self.calls: List[tuple] = []
        self.image_calls: List[tuple] = []
        self.active = 0
        self.max_active = 0

    async def _run(self, default_reply: str) -> str:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            if self.replies:
                return self.replies.pop(0)
            return default_reply
        finally:
            self.active -= 1

    async def complete(self, history):
        self.calls.append(tuple(history))
        last = history[-1].content if history else ""
        return await self._run(f"echo: {last}")

    async def complete_with_image(self, caption, image_url):
        self.image_calls.append((caption, image_url))
        return await self._run(f"image: {caption}")


# ==================== Fixtures ====================

@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def channel():
    return MockChannel(media={"photo-1": "https://files.example/photo-1.jpg"})


@pytest.fixture
def client():
    return FakeCompletionClient()


@pytest.fixture
def make_relay(store, channel, client):
    """按需构造 MessageRelay（可覆盖任意参数）"""

    def _make(**overrides):
        params = {
            "store": store,
            "client": client,
            "channel": channel,
            "gate": AccessGate(),
            "pool": CompletionPool(max_concurrency=8, max_wait_time=5),
        }
        params.update(overrides)
        return MessageRelay(**params)

    return _make


def seed_history(store: SessionStore, conversation_id, turns: int) -> None:
    """预置若干轮对话"""
    for i in range(turns):
        store.append_pair(
            conversation_id,
            Message.user(f"question {i}"),
            Message.assistant(f"answer {i}")
        )
