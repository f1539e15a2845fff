"""
giftrelay.main
~~~~~~~~~~~~~~

FastAPI 应用入口 —— 注册路由、挂载中间件、定义生命周期。

生命周期即礼物流客户端的启动 / 停止钩子：
启动时读取凭证并（在配置了默认用户名时）连接，关闭时释放连接。
"""
from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from giftrelay.api import connection_endpoints, gift_stream_ws
from giftrelay.core.config import settings
from giftrelay.core.logging import get_logger, setup_logging
from giftrelay.core.rate_limit import limiter
from giftrelay.schemas.api_response import ApiResponse
from giftrelay.services.gift_client import GiftClient
from giftrelay.services.relay_broadcaster import RelayBroadcaster

# 初始化日志系统（必须在其他模块之前）
setup_logging()
logger = get_logger(__name__)


# ── 生命周期 ──────────────────────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """应用生命周期钩子，仅在 worker 启动/关闭时各执行一次。"""
    # ── 启动 ──
    broadcaster = RelayBroadcaster(queue_size=settings.RELAY_QUEUE_SIZE)
    relay_task = asyncio.create_task(broadcaster.run(), name="gift-relay")

    client = GiftClient(settings)
    client.router.subscribe(broadcaster.publish_gift)

    app.state.broadcaster = broadcaster
    app.state.gift_client = client

    client.start()
    logger.info(
        "🚀 应用已启动 | env=%s | debug=%s | log_level=%s",
        settings.ENVIRONMENT,
        settings.debug,
        settings.effective_log_level,
    )
    yield
    # ── 关闭 ──
    client.stop()
    client.router.unsubscribe(broadcaster.publish_gift)
    broadcaster.stop()
    _, pending = await asyncio.wait({relay_task}, timeout=2.0)
    for task in pending:
        task.cancel()
    logger.info("👋 应用已关闭")


# ── 创建 FastAPI 实例 ─────────────────────────────────────────────────

app: FastAPI = FastAPI(
    title=settings.PROJECT_NAME,
    description="TikTok 直播礼物流接入与转发服务",
    version=settings.VERSION,
    debug=settings.debug,
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# ── 路由挂载 ──────────────────────────────────────────────────────────
app.include_router(connection_endpoints.router, prefix="/api", tags=["Gift Stream Connection"])
app.include_router(gift_stream_ws.router, tags=["Gift Relay"])


# ── 全局异常处理器 ────────────────────────────────────────────────────

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """捕获所有未处理异常，返回统一的 ApiResponse.fail() 格式。"""
    logger.error("未捕获异常: %s %s -> %s", request.method, request.url, exc, exc_info=True)
    # 非 prod 环境返回详细错误信息，prod 环境隐藏内部细节
    detail = str(exc) if not settings.is_prod else "服务器内部错误"
    response = ApiResponse.fail(msg=detail, code=500, data=None)
    return JSONResponse(
        status_code=500,
        content=response.model_dump(),
    )


@app.get("/health", tags=["System"])
async def health_check(request: Request) -> JSONResponse:
    """验证服务是否正常运行。

    Returns:
        包含服务状态与礼物流连接状态的 JSON 响应。
    """
    client: GiftClient = request.app.state.gift_client
    return JSONResponse(
        content={
            "status": "ok",
            "environment": settings.ENVIRONMENT,
            "debug": settings.debug,
            "log_level": settings.effective_log_level,
            "gift_stream": client.session.state.value,
        },
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "giftrelay.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.reload,  # 仅 dev 环境开启热重载
        log_level=settings.effective_log_level.lower(),
    )
