"""
结算核心主入口：在单进程内运行退款与 Webhook 两个周期任务
"""
import asyncio
import signal

from core.config import settings
from core.logging_config import get_logger, configure_logging
from infrastructure.database import create_tables, dispose_engine
from infrastructure.jobs import build_components, build_scheduler


# 初始化日志：在入口处显式配置，避免模块导入时的副作用
configure_logging()
logger = get_logger(__name__)


async def main() -> None:
    if not settings.scheduler.enabled:
        logger.warning("scheduler_disabled", message="Scheduler disabled by config (SCHEDULER__ENABLED=false)")
        return

    # 启动时创建数据库表（仅开发环境）。生产应使用 Alembic 迁移
    if settings.DEBUG:
        await create_tables()
        logger.info("database_initialized", message="Database tables created (development)")

    components = build_components(settings)
    scheduler = build_scheduler(components, settings)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, shutdown.set)
        except NotImplementedError:  # Windows
            signal.signal(sig, lambda *_: shutdown.set())

    logger.info(
        "settlement_core_starting",
        environment=settings.ENVIRONMENT,
        refund_interval=settings.refund.tick_interval,
        webhook_interval=settings.webhook.tick_interval,
    )
    await scheduler.start()
    try:
        await shutdown.wait()
    finally:
        logger.info("settlement_core_stopping")
        await scheduler.stop(timeout=settings.scheduler.shutdown_timeout)
        await components.aclose()
        await dispose_engine()
        logger.info("settlement_core_stopped")


if __name__ == "__main__":
    asyncio.run(main())
