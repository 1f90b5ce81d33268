"""
Session Store - 会话历史存储

核心职责：
1. 持有每个会话（conversation_id）的消息历史，仅保存在进程内存中
2. 对外只提供不可变快照（tuple），不暴露内部可变引用
3. 历史只允许成对追加（user → assistant）或整体清空
4. 提供按会话粒度的互斥（per-conversation asyncio.Lock）

并发说明：
- 运行在单个事件循环内，get / append_pair / reset 之间没有 await，天然原子
- 锁按会话懒创建，无人持有且无人等待时即回收
- asyncio.Lock 的等待者按 FIFO 唤醒，同一会话内的中继周期按获取顺序串行执行
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Dict, TypeVar, Union

from chatrelay.models.conversation import History, Message, Role

logger = logging.getLogger(__name__)

ConversationID = Union[int, str]
T = TypeVar("T")


class _LockEntry:
    """会话锁及其当前持有/等待者计数"""

    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class SessionStore:
    """
    进程内会话存储

    Example:
        async with store.lock(chat_id):
            history = store.get(chat_id)
            ...
            store.append_pair(chat_id, user_msg, assistant_msg)
    """

    def __init__(self):
        self._histories: Dict[ConversationID, History] = {}
        self._locks: Dict[ConversationID, _LockEntry] = {}

        logger.info("SessionStore initialized (memory)")

    def get(self, conversation_id: ConversationID) -> History:
        """
        获取会话历史快照（首次访问时创建空会话）

        Returns:
            不可变的消息元组
        """
        history = self._histories.get(conversation_id)
        if history is None:
            history = ()
            self._histories[conversation_id] = history
            logger.debug(f"Created conversation {conversation_id}")
        return history

    def append_pair(
        self,
        conversation_id: ConversationID,
        user_msg: Message,
        assistant_msg: Message
    ) -> None:
        """
        原子追加一组 user → assistant 消息

        Raises:
            ValueError: 角色不匹配（此时历史不做任何修改）
        """
        if user_msg.role != Role.USER or assistant_msg.role != Role.ASSISTANT:
            raise ValueError(
                f"append_pair expects (user, assistant), got "
                f"({user_msg.role.value}, {assistant_msg.role.value})"
            )
        history = self._histories.get(conversation_id, ())
        self._histories[conversation_id] = history + (user_msg, assistant_msg)

    def reset(self, conversation_id: ConversationID) -> None:
        """清空会话历史（对空会话也是成功的空操作）"""
        previous = len(self._histories.get(conversation_id, ()))
        self._histories[conversation_id] = ()
        logger.info(f"Reset conversation {conversation_id} ({previous} messages dropped)")

    @asynccontextmanager
    async def lock(self, conversation_id: ConversationID):
        """
        获取会话级独占访问（上下文管理器）

        只串行化同一会话，不同会话之间互不阻塞。
        """
        entry = self._locks.get(conversation_id)
        if entry is None:
            entry = _LockEntry()
            self._locks[conversation_id] = entry
        entry.users += 1

        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._locks.get(conversation_id) is entry:
                del self._locks[conversation_id]

    async def with_lock(
        self,
        conversation_id: ConversationID,
        fn: Callable[[], Awaitable[T]]
    ) -> T:
        """在会话锁内执行 fn 并返回其结果"""
        async with self.lock(conversation_id):
            return await fn()

    def is_locked(self, conversation_id: ConversationID) -> bool:
        entry = self._locks.get(conversation_id)
        return entry is not None and entry.lock.locked()

    def get_stats(self) -> dict:
        """获取存储统计信息"""
        return {
            "conversations": len(self._histories),
            "messages": sum(len(h) for h in self._histories.values()),
            "live_locks": len(self._locks),
        }


__all__ = [
    "ConversationID",
    "SessionStore",
]
