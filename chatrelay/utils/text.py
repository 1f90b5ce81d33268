"""
文本工具
"""

from typing import List

# Telegram 单条消息的最大长度
TELEGRAM_MESSAGE_LIMIT = 4096


def split_text(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT) -> List[str]:
    """
    按长度上限切分文本,尽量在换行处断开

    Args:
        text: 原始文本
        limit: 每段最大字符数

    Returns:
        非空的文本段列表(空文本返回 [""])
    """
    if limit <= 0:
        raise ValueError("limit must be positive")
    if len(text) <= limit:
        return [text]

    chunks = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit)
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n")
    if remaining:
        chunks.append(remaining)
    return chunks


def preview(text: str, length: int = 50) -> str:
    """日志用的截断预览"""
    return text if len(text) <= length else f"{text[:length]}..."
