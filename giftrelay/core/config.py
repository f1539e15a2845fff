"""
giftrelay.core.config
~~~~~~~~~~~~~~~~~~~~~

集中式配置管理，基于 pydantic-settings 自动从 ``.env`` 文件加载。

支持多环境配置（dev / test / prod），加载顺序为:
  1. 环境变量（最高优先级）
  2. ``.env.{ENVIRONMENT}`` 环境专属文件
  3. ``.env`` 基础文件
  4. 字段默认值（最低优先级）
"""
from __future__ import annotations

import os
from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# 读取当前环境标识（在 Settings 类定义之前，用于决定加载哪个 .env 文件）
_CURRENT_ENV: str = os.getenv("ENVIRONMENT", "dev")


class Settings(BaseSettings):
    """全局配置对象，字段值按如下优先级加载：环境变量 > .env.{env} > .env > 默认值。"""

    # ── 基础 ──────────────────────────────────────────────────────────
    PROJECT_NAME: str = Field(default="TikTok Gift Relay", description="项目名称")
    VERSION: str = Field(default="0.1.0", description="版本号")
    ENVIRONMENT: Literal["dev", "test", "prod"] = Field(
        default="dev",
        description="运行环境：dev / test / prod",
    )

    # ── TikTok 礼物流 ─────────────────────────────────────────────────
    TIKTOK_API_KEY: SecretStr = Field(
        default=SecretStr(""),
        description="礼物流服务的 API Key（可为空，由服务端决定是否放行）",
    )
    TIKTOK_DEFAULT_USERNAME: str = Field(
        default="unset",
        description="启动时自动加入的直播间用户名，保持 unset 则不自动连接",
    )
    TIKTOK_WS_BASE_URL: str = Field(
        default="wss://tiktok-live-server-2.onrender.com/ws/",
        description="礼物流 WebSocket 基础地址，最终地址为 base + username",
    )
    TIKTOK_VERBOSE_LOGGING: bool = Field(
        default=False,
        description="是否以 INFO 级别输出非礼物消息（默认仅 DEBUG）",
    )

    # ── WebSocket 传输 ────────────────────────────────────────────────
    WS_CONNECT_TIMEOUT: float | None = Field(
        default=None,
        description="建立连接的超时秒数，None 表示不超时",
    )
    WS_PING_INTERVAL: float | None = Field(
        default=20.0,
        description="WebSocket 心跳间隔秒数，None 表示关闭心跳",
    )

    # ── 下游转发 ──────────────────────────────────────────────────────
    RELAY_QUEUE_SIZE: int = Field(
        default=100,
        description="下游广播队列容量，满时丢弃新礼物",
    )
    CONNECT_RATE_LIMIT: str = Field(
        default="5/minute",
        description="连接控制接口的限流规则（slowapi 语法）",
    )

    # ── 服务 ──────────────────────────────────────────────────────────
    HOST: str = Field(default="0.0.0.0", description="服务监听地址")
    PORT: int = Field(default=8000, description="服务监听端口")
    LOG_LEVEL: str = Field(default="INFO", description="日志级别（可被环境属性覆盖）")

    # ── Pydantic Settings ─────────────────────────────────────────────
    # 先加载 .env.{env} 再加载 .env，前者优先级更高
    model_config = SettingsConfigDict(
        env_file=(f".env.{_CURRENT_ENV}", ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── 环境判断 ──────────────────────────────────────────────────────

    @property
    def is_prod(self) -> bool:
        """当前是否为生产环境。"""
        return self.ENVIRONMENT == "prod"

    @property
    def is_dev(self) -> bool:
        """当前是否为开发环境。"""
        return self.ENVIRONMENT == "dev"

    @property
    def debug(self) -> bool:
        """是否开启 debug 模式。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def reload(self) -> bool:
        """是否开启热重载。仅 dev 环境开启。"""
        return self.is_dev

    @property
    def effective_log_level(self) -> str:
        """根据环境自动推断日志级别。

        - dev  → INFO
        - test → DEBUG（方便排查测试失败）
        - prod → WARNING（减少噪音）

        如果环境变量中显式设置了 LOG_LEVEL，会覆盖此默认推断。
        """
        env_log = os.getenv("LOG_LEVEL")
        if env_log:
            return env_log
        return {
            "dev": "INFO",
            "test": "DEBUG",
            "prod": "WARNING",
        }.get(self.ENVIRONMENT, "INFO")


@lru_cache
def get_settings() -> Settings:
    """获取全局 Settings 单例（带缓存，避免重复解析 .env）。"""
    return Settings()


settings: Settings = get_settings()
