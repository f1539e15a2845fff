"""
giftrelay.core.rate_limit
~~~~~~~~~~~~~~~~~~~~~~~~~

连接控制接口的限流配置。

频繁地 connect / disconnect 会被上游礼物服务视为异常会话，
因此控制接口按客户端 IP 限流。
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

# --------- HTTP 接口限流器 ---------
# 基于客户端 IP 地址进行限流
limiter = Limiter(
    key_func=get_remote_address,
    storage_uri="memory://",
)
