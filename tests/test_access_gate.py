"""
访问控制单元测试
"""

from chatrelay.services.access_gate import AccessGate, is_allowed


def test_empty_allow_set_admits_everyone():
    """允许名单为空时为开放模式"""
    for user_id in (0, 1, 42, -100, "alice"):
        assert is_allowed(user_id, frozenset()) is True


def test_membership_when_restricted():
    """名单非空时仅允许名单内用户"""
    assert is_allowed(42, {42}) is True
    assert is_allowed(41, {42}) is False
    assert is_allowed("42", {42}) is False


def test_gate_wraps_configured_users():
    gate = AccessGate([1, 2])
    assert gate.open_mode is False
    assert gate.allows(1)
    assert gate.allows(2)
    assert not gate.allows(3)


def test_gate_defaults_to_open_mode():
    gate = AccessGate()
    assert gate.open_mode is True
    assert gate.allows(12345)
