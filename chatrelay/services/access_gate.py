"""
Access Gate - 访问控制

允许名单为空时为开放模式，所有用户均可使用；
否则仅允许名单内的发送者。
"""

from typing import AbstractSet, Hashable, Iterable, Optional


def is_allowed(user_id: Hashable, allow_set: AbstractSet[Hashable]) -> bool:
    """判断用户是否允许使用（纯函数，无副作用）"""
    if not allow_set:
        return True
    return user_id in allow_set


class AccessGate:
    """持有已配置允许名单的访问控制器"""

    def __init__(self, allowed_users: Optional[Iterable[Hashable]] = None):
        self.allowed_users = frozenset(allowed_users or ())

    @property
    def open_mode(self) -> bool:
        return not self.allowed_users

    def allows(self, user_id: Hashable) -> bool:
        return is_allowed(user_id, self.allowed_users)


__all__ = ["is_allowed", "AccessGate"]
