"""
Main application entry point for chatrelay.

启动命令:
    python3 -m chatrelay.main
"""
from dotenv import load_dotenv

# 加载 .env 文件（必须在读取配置之前）
load_dotenv()

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chatrelay import __version__
from chatrelay.channels.telegram import TelegramAdapter
from chatrelay.config.settings import Settings, get_settings
from chatrelay.services.access_gate import AccessGate
from chatrelay.services.audit_logger import get_audit_logger
from chatrelay.services.command_handler import CommandHandler
from chatrelay.services.completion_client import CompletionClient
from chatrelay.services.completion_pool import CompletionPool
from chatrelay.services.message_relay import MessageRelay
from chatrelay.services.session_store import SessionStore
from chatrelay.services.update_dispatcher import UpdateDispatcher

logger = logging.getLogger(__name__)


def setup_logging(settings: Settings) -> None:
    """配置日志（文件 + 控制台）"""
    log_dir = Path(settings.LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_dir / 'app.log'),
            logging.StreamHandler()
        ]
    )
    # httpx 会在 INFO 级别打印完整 URL（包含 Bot Token）
    logging.getLogger("httpx").setLevel(logging.WARNING)


def build_services(settings: Settings) -> dict:
    """按配置组装所有组件"""
    channel = TelegramAdapter.from_settings(settings)
    store = SessionStore()
    client = CompletionClient.from_settings(settings)
    pool = CompletionPool(
        max_concurrency=settings.MAX_CONCURRENT_COMPLETIONS,
        max_wait_time=settings.COMPLETION_QUEUE_TIMEOUT
    )
    gate = AccessGate(settings.allowed_users)
    relay = MessageRelay(
        store=store,
        client=client,
        channel=channel,
        gate=gate,
        pool=pool,
        audit=get_audit_logger(Path(settings.LOG_DIR)),
        history_window=settings.HISTORY_WINDOW,
        image_policy=settings.IMAGE_HISTORY_POLICY
    )
    dispatcher = UpdateDispatcher(channel=channel, relay=relay, commands=CommandHandler(store))

    return {
        "settings": settings,
        "channel": channel,
        "store": store,
        "client": client,
        "pool": pool,
        "gate": gate,
        "relay": relay,
        "dispatcher": dispatcher,
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    settings = get_settings()
    setup_logging(settings)
    logger.info("Starting chatrelay...")

    services = build_services(settings)
    app.state.services = services

    if services["gate"].open_mode:
        logger.warning("TELEGRAM_ALLOWED_USERS is empty, the bot is open to everyone")
    else:
        logger.info(f"Access restricted to {len(services['gate'].allowed_users)} users")

    await services["channel"].initialize()
    services["dispatcher"].start()
    logger.info("Application startup complete")

    yield

    # 关闭时清理
    logger.info("Shutting down...")
    await services["dispatcher"].stop(timeout=settings.COMPLETION_TIMEOUT)
    await services["channel"].close()
    await services["client"].close()
    logger.info("Application shutdown complete")


# 创建FastAPI应用
app = FastAPI(
    title="chatrelay",
    version=__version__,
    description="Chat transport ⇄ completion service relay with per-conversation history",
    lifespan=lifespan
)


# 全局异常处理
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Global exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc)}
    )


# 健康检查端点
@app.get("/health")
async def health_check(request: Request):
    """系统健康检查端点"""
    services = getattr(request.app.state, "services", None)
    dispatcher = services["dispatcher"] if services else None
    return {
        "status": "healthy" if dispatcher and dispatcher.running else "starting",
        "version": __version__,
        "service": "chatrelay"
    }


# 运行信息端点
@app.get("/info")
async def system_info(request: Request):
    """返回配置与运行时统计信息"""
    services = getattr(request.app.state, "services", None)
    if not services:
        return JSONResponse(status_code=503, content={"detail": "services not initialized"})

    settings: Settings = services["settings"]
    return {
        "model": settings.OPENAI_MODEL,
        "max_tokens": settings.MAX_TOKENS,
        "temperature": settings.TEMPERATURE,
        "image_history_policy": services["relay"].image_policy.value,
        "history_window": settings.HISTORY_WINDOW,
        "open_mode": services["gate"].open_mode,
        "sessions": services["store"].get_stats(),
        "completion_pool": services["pool"].get_stats(),
        "dispatcher": services["dispatcher"].get_stats(),
    }


# 根路径
@app.get("/")
async def root():
    """根路径"""
    return {
        "message": "chatrelay is running",
        "version": __version__,
        "docs": "/docs"
    }


def main():
    """主函数"""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        app,
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower()
    )


if __name__ == "__main__":
    main()
