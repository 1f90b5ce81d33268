"""
补全调用并发池

设计原则：
1. 使用信号量限制同时在途的补全请求数量（按后端容量配置）
2. 获取槽位有最长等待时间，超时视为后端不可用
3. 只限制容量，不参与会话级串行化

使用方式：
    async with pool.acquire():
        text = await client.complete(history)
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from chatrelay.services.errors import BackendUnavailable

logger = logging.getLogger(__name__)


class CompletionPool:
    """
    补全调用并发池

    关键特性：
    - 信号量控制全局并发数量
    - 等待槽位超时抛出 BackendUnavailable
    - 统计在途与累计请求数
    """

    def __init__(self, max_concurrency: int, max_wait_time: float = 30.0):
        """
        Args:
            max_concurrency: 最大并发补全数量
            max_wait_time: 获取槽位最大等待时间（秒）
        """
        self.max_concurrency = max_concurrency
        self.max_wait_time = max_wait_time

        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._active_count = 0
        self._total_requests = 0
        self._rejected_requests = 0

        logger.info(f"CompletionPool created (max_concurrency={max_concurrency})")

    @asynccontextmanager
    async def acquire(self):
        """获取一个补全槽位（上下文管理器）"""
        waiter = asyncio.ensure_future(self._semaphore.acquire())
        try:
            await asyncio.wait_for(asyncio.shield(waiter), timeout=self.max_wait_time)
        except asyncio.CancelledError:
            await self._abandon(waiter)
            raise
        except asyncio.TimeoutError:
            await self._abandon(waiter)
            self._rejected_requests += 1
            logger.error(f"Timeout waiting for completion slot (waited {self.max_wait_time}s)")
            raise BackendUnavailable(
                f"no completion slot available within {self.max_wait_time}s"
            )

        self._active_count += 1
        self._total_requests += 1
        try:
            yield
        finally:
            self._active_count -= 1
            self._semaphore.release()

    async def _abandon(self, waiter: asyncio.Future) -> None:
        """放弃等待；取消与获取同时发生时槽位已经到手，需要归还"""
        waiter.cancel()
        await asyncio.wait({waiter})
        if not waiter.cancelled() and waiter.exception() is None:
            self._semaphore.release()

    def get_stats(self) -> dict:
        """获取并发池统计信息"""
        return {
            "max_concurrency": self.max_concurrency,
            "active": self._active_count,
            "available_slots": self.max_concurrency - self._active_count,
            "total_requests": self._total_requests,
            "rejected_requests": self._rejected_requests,
        }


__all__ = ["CompletionPool"]
