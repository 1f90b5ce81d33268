"""
Command Handler - 管理命令处理

支持的命令：
- start: 返回欢迎语和可用命令键盘，不修改历史
- reset: 在会话锁内清空历史，返回确认语（幂等）
未知命令返回 None，由调用方忽略。
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from chatrelay.services.session_store import ConversationID, SessionStore

logger = logging.getLogger(__name__)

WELCOME_TEXT = (
    "Welcome! I'm your ChatGPT assistant. "
    "Send me a message or use /reset to start a new chat."
)
RESET_TEXT = "Chat session reset. Starting a new conversation."

# 回复键盘：一行一个 /reset 按钮
COMMAND_KEYBOARD = [["/reset"]]


@dataclass
class CommandReply:
    """命令处理结果"""
    text: str
    keyboard: List[List[str]] = field(default_factory=lambda: [list(row) for row in COMMAND_KEYBOARD])


class CommandHandler:
    """管理命令处理器"""

    def __init__(self, store: SessionStore):
        self.store = store

    async def handle(self, command: str, conversation_id: ConversationID) -> Optional[CommandReply]:
        """
        分发命令

        Args:
            command: 命令名（不含前导 /）
            conversation_id: 会话ID

        Returns:
            CommandReply；未知命令返回 None
        """
        if command == "start":
            return self.start()
        if command == "reset":
            return await self.reset(conversation_id)

        logger.debug(f"Ignoring unknown command /{command} in {conversation_id}")
        return None

    def start(self) -> CommandReply:
        return CommandReply(text=WELCOME_TEXT)

    async def reset(self, conversation_id: ConversationID) -> CommandReply:
        # 等待进行中的中继周期结束后再清空
        async with self.store.lock(conversation_id):
            self.store.reset(conversation_id)
        return CommandReply(text=RESET_TEXT)


__all__ = [
    "CommandReply",
    "CommandHandler",
    "WELCOME_TEXT",
    "RESET_TEXT",
]
