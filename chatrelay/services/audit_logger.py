"""
审计日志系统

职责：
- 记录被拒绝的访问与失败的中继周期
- JSON Lines格式存储，供运维人工复核
- 写入失败只记录错误，不影响中继流程
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

import aiofiles

logger = logging.getLogger(__name__)


class AuditLogger:
    """审计日志（用于人工复核）"""

    def __init__(self, log_dir: Path):
        """
        初始化审计日志

        Args:
            log_dir: 日志目录
        """
        self.log_dir = log_dir
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.relay_audit_file = log_dir / "relay_audit.jsonl"

        logger.info(f"AuditLogger initialized (log_dir={log_dir})")

    async def log_access_denied(self, user_id: Union[int, str], conversation_id: Union[int, str]):
        """记录被访问控制拒绝的请求"""
        await self._write({
            "timestamp": datetime.now().isoformat(),
            "event_type": "access_denied",
            "user_id": user_id,
            "conversation_id": conversation_id,
        })

    async def log_relay_failure(
        self,
        conversation_id: Union[int, str],
        user_id: Union[int, str],
        error_code: str,
        detail: str,
        path: str = "text"
    ):
        """
        记录失败的中继周期

        Args:
            conversation_id: 会话ID
            user_id: 发送者ID
            error_code: 错误码（RelayError.code）
            detail: 错误详情
            path: text / image
        """
        await self._write({
            "timestamp": datetime.now().isoformat(),
            "event_type": "relay_failure",
            "conversation_id": conversation_id,
            "user_id": user_id,
            "path": path,
            "error_code": error_code,
            "detail": detail[:300],
        })

    async def _write(self, entry: dict) -> None:
        try:
            async with aiofiles.open(self.relay_audit_file, 'a', encoding='utf-8') as f:
                await f.write(json.dumps(entry, ensure_ascii=False) + '\n')
        except OSError as e:
            logger.error(f"Failed to write audit log: {e}")


# 全局单例
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger(log_dir: Optional[Path] = None) -> AuditLogger:
    """
    获取AuditLogger单例

    Args:
        log_dir: 日志目录

    Returns:
        AuditLogger实例
    """
    global _audit_logger

    if _audit_logger is None:
        if log_dir is None:
            log_dir = Path("logs")

        _audit_logger = AuditLogger(log_dir=log_dir)

    return _audit_logger


__all__ = [
    "AuditLogger",
    "get_audit_logger"
]
