"""
Update Dispatcher - 入站更新分发器

职责：
1. 按顺序消费渠道产出的入站消息
2. 每条消息交给独立的 asyncio task 处理，拉取循环不等待处理结果
3. 路由：命令 → CommandHandler；文本 → 文本中继；图片 → 图片中继；其他忽略
4. 跟踪在途 task，停止时等待其完成

慢的补全调用只占用自己的 task，不会拖慢其他会话或后续消息的拉取。
"""

import asyncio
import logging
from typing import Awaitable, Optional, Set

from chatrelay.channels.base import BaseChannelAdapter, ChannelAdapterError, ChannelMessage, MessageType
from chatrelay.services.command_handler import CommandHandler
from chatrelay.services.message_relay import MessageRelay

logger = logging.getLogger(__name__)


class UpdateDispatcher:
    """入站更新分发器"""

    def __init__(
        self,
        channel: BaseChannelAdapter,
        relay: MessageRelay,
        commands: CommandHandler
    ):
        self.channel = channel
        self.relay = relay
        self.commands = commands

        self._tasks: Set[asyncio.Task] = set()
        self._intake_task: Optional[asyncio.Task] = None
        self._total_dispatched = 0
        self._ignored = 0

    @property
    def running(self) -> bool:
        return self._intake_task is not None and not self._intake_task.done()

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def run(self) -> None:
        """拉取循环：直到渠道迭代结束或被取消"""
        logger.info(f"Dispatcher started on channel {self.channel.channel_name}")
        try:
            async for message in self.channel.updates():
                self.dispatch(message)
        finally:
            logger.info("Dispatcher intake stopped")

    def start(self) -> asyncio.Task:
        """在后台启动拉取循环"""
        if self.running:
            logger.warning("Dispatcher already running")
            return self._intake_task
        self._intake_task = asyncio.create_task(self.run(), name="dispatcher-intake")
        return self._intake_task

    async def stop(self, timeout: float = 30.0) -> None:
        """停止拉取并等待在途 task 完成"""
        self.channel.stop_polling()
        if self._intake_task is not None:
            self._intake_task.cancel()
            try:
                await self._intake_task
            except asyncio.CancelledError:
                pass
            self._intake_task = None
        await self.drain(timeout)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """等待在途 task；超时后取消剩余 task"""
        if not self._tasks:
            return
        pending_tasks = set(self._tasks)
        logger.info(f"Waiting for {len(pending_tasks)} in-flight updates...")
        _, pending = await asyncio.wait(pending_tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} updates still running after {timeout}s")
            await asyncio.gather(*pending, return_exceptions=True)

    def dispatch(self, message: ChannelMessage) -> Optional[asyncio.Task]:
        """
        为一条入站消息创建独立 task

        Returns:
            创建的 task；被忽略的消息返回 None
        """
        handler = self._route(message)
        if handler is None:
            self._ignored += 1
            logger.debug(f"Ignoring {message.msg_type} message {message.message_id} in {message.chat_id}")
            return None

        task = asyncio.create_task(handler, name=f"update-{message.chat_id}-{message.message_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        self._total_dispatched += 1
        return task

    def _route(self, message: ChannelMessage) -> Optional[Awaitable]:
        if message.msg_type == MessageType.COMMAND and message.command:
            return self._handle_command(message)
        if message.msg_type == MessageType.TEXT and message.content:
            return self.relay.handle_text(message.chat_id, message.user.user_id, message.content)
        if message.msg_type == MessageType.IMAGE and message.media_ref:
            return self.relay.handle_image(
                message.chat_id,
                message.user.user_id,
                message.caption,
                message.media_ref
            )
        return None

    async def _handle_command(self, message: ChannelMessage) -> None:
        if not await self.relay.check_access(message.chat_id, message.user.user_id):
            return

        reply = await self.commands.handle(message.command, message.chat_id)
        if reply is None:
            return

        try:
            await self.channel.send_message(message.chat_id, reply.text, keyboard=reply.keyboard)
        except ChannelAdapterError as e:
            logger.error(f"Failed to send /{message.command} reply to {message.chat_id}: {e}")

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Update task {task.get_name()} failed: {exc}", exc_info=exc)

    def get_stats(self) -> dict:
        """获取分发器统计信息"""
        return {
            "running": self.running,
            "in_flight": self.in_flight,
            "total_dispatched": self._total_dispatched,
            "ignored": self._ignored,
        }


__all__ = ["UpdateDispatcher"]
