"""Utility functions and helpers."""

from .text import (
    TELEGRAM_MESSAGE_LIMIT,
    split_text,
    preview
)

__all__ = [
    'TELEGRAM_MESSAGE_LIMIT',
    'split_text',
    'preview'
]
