"""
Models module for data structures
"""

from .conversation import (
    Role,
    TextBlock,
    ImageBlock,
    Message,
    History,
)
from .completion import (
    CompletionSuccess,
    CompletionRejected,
    MalformedResponse,
    TransportFailure,
    CompletionOutcome,
)

__all__ = [
    'Role',
    'TextBlock',
    'ImageBlock',
    'Message',
    'History',
    'CompletionSuccess',
    'CompletionRejected',
    'MalformedResponse',
    'TransportFailure',
    'CompletionOutcome',
]
