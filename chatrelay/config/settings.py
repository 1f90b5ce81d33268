"""
Application settings and configuration management.
"""
import re
from typing import FrozenSet, Optional

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Telegram 配置
    TELEGRAM_BOT_TOKEN: Optional[str] = None
    TELEGRAM_ALLOWED_USERS: str = ""  # 逗号/空格分隔的 user id，留空表示不限制
    TELEGRAM_API_BASE_URL: str = "https://api.telegram.org"
    TELEGRAM_POLL_TIMEOUT: int = 60  # 长轮询秒数
    TELEGRAM_INLINE_MEDIA: bool = False  # 图片以 data URL 形式发给模型

    # 补全服务配置（OpenAI 兼容接口）
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_MODEL: str = "gpt-4o-mini"
    MAX_TOKENS: int = 1000
    TEMPERATURE: float = 0.7

    # 并发与超时
    COMPLETION_TIMEOUT: float = 60.0  # 单次补全调用上限（秒）
    MAX_CONCURRENT_COMPLETIONS: int = 8
    COMPLETION_QUEUE_TIMEOUT: float = 30.0  # 等待补全槽位的最长时间（秒）

    # 会话配置
    HISTORY_WINDOW: int = 0  # 发送给模型的尾部消息数，0 表示全部
    IMAGE_HISTORY_POLICY: str = "stateless"  # stateless / persist

    # 服务配置
    HOST: str = "0.0.0.0"
    PORT: int = 8080
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    @field_validator("TELEGRAM_ALLOWED_USERS")
    @classmethod
    def validate_allowed_users(cls, value: str) -> str:
        for part in re.split(r"[,\s]+", value):
            if part and not part.lstrip("-").isdigit():
                raise ValueError(f"TELEGRAM_ALLOWED_USERS contains a non-numeric id: {part}")
        return value

    @field_validator("IMAGE_HISTORY_POLICY")
    @classmethod
    def validate_image_policy(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("stateless", "persist"):
            raise ValueError("IMAGE_HISTORY_POLICY must be 'stateless' or 'persist'")
        return value

    @field_validator("MAX_CONCURRENT_COMPLETIONS")
    @classmethod
    def validate_concurrency(cls, value: int) -> int:
        if value < 1:
            raise ValueError("MAX_CONCURRENT_COMPLETIONS must be at least 1")
        return value

    @model_validator(mode='after')
    def validate_credentials(self):
        """验证必需的凭据均已配置"""
        if not self.TELEGRAM_BOT_TOKEN:
            raise ValueError("必须配置 TELEGRAM_BOT_TOKEN")
        if not self.OPENAI_API_KEY:
            raise ValueError("必须配置 OPENAI_API_KEY")
        return self

    @property
    def allowed_users(self) -> FrozenSet[int]:
        """解析 TELEGRAM_ALLOWED_USERS 为整数集合"""
        parts = [p for p in re.split(r"[,\s]+", self.TELEGRAM_ALLOWED_USERS) if p]
        return frozenset(int(p) for p in parts)

    class Config:
        env_file = ".env"
        case_sensitive = True


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    获取设置实例（首次调用时从环境加载）

    Returns:
        Settings 实例
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
