"""
giftrelay.services.message_codec
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

礼物流消息编解码。

- ``decode_frame(raw)``        → 单帧文本解码为 ``GiftEvent`` / ``OtherEvent``，永不抛异常
- ``encode_handshake(...)``    → 连接建立后发送的握手 JSON
- ``encode_gift(event)``       → 礼物事件转回线上 camelCase JSON（下游转发用）

礼物字段逐个独立读取，类型不符或缺失时回落到该类型的默认值：

============  =========================================================
字段类型       缺省 / 类型不符时
============  =========================================================
int           ``0``（接受 JSON 整数与整数值浮点，拒绝布尔与字符串）
str           ``""``（JSON 整数会转成十进制字符串）
bool          ``False``（JSON 整数按 ``!= 0`` 处理）
list          ``[]``（类型不符的元素被跳过）
嵌套对象       空模型；``gift`` 与 ``topGifterRank`` 缺失时为 ``None``
============  =========================================================
"""
from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from giftrelay.core.logging import get_logger
from giftrelay.schemas.gift_events import (
    DecodedEvent,
    FollowInfo,
    GiftDetails,
    GiftEvent,
    OtherEvent,
    UserBadge,
    UserDetails,
)

logger = get_logger(__name__)

GIFT_MESSAGE_TYPE: str = "gift"


# ── 字段读取 ──────────────────────────────────────────────────────────

def _read_int(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return 0


def _read_optional_int(data: dict[str, Any], key: str) -> int | None:
    if data.get(key) is None:
        return None
    return _read_int(data, key)


def _read_str(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if isinstance(value, str):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        # 部分服务端把 ID 作为数字下发
        return str(value)
    return ""


def _read_bool(data: dict[str, Any], key: str) -> bool:
    value = data.get(key)
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    return False


def _read_object(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    return value if isinstance(value, dict) else {}


def _read_list(data: dict[str, Any], key: str) -> list[Any]:
    value = data.get(key)
    return value if isinstance(value, list) else []


def _read_int_list(data: dict[str, Any], key: str) -> list[int]:
    return [
        item for item in _read_list(data, key)
        if isinstance(item, int) and not isinstance(item, bool)
    ]


def _read_str_list(data: dict[str, Any], key: str) -> list[str]:
    return [item for item in _read_list(data, key) if isinstance(item, str)]


# ── 嵌套结构 ──────────────────────────────────────────────────────────

def _decode_badge(data: dict[str, Any]) -> UserBadge:
    return UserBadge(
        type=_read_str(data, "type"),
        privilege_id=_read_str(data, "privilegeId"),
        level=_read_int(data, "level"),
        badge_scene_type=_read_int(data, "badgeSceneType"),
    )


def _decode_user_details(data: dict[str, Any]) -> UserDetails:
    return UserDetails(
        create_time=_read_str(data, "createTime"),
        bio_description=_read_str(data, "bioDescription"),
        profile_picture_urls=_read_str_list(data, "profilePictureUrls"),
    )


def _decode_follow_info(data: dict[str, Any]) -> FollowInfo:
    return FollowInfo(
        following_count=_read_int(data, "followingCount"),
        follower_count=_read_int(data, "followerCount"),
        follow_status=_read_int(data, "followStatus"),
        push_status=_read_int(data, "pushStatus"),
    )


def _decode_gift_details(data: dict[str, Any]) -> GiftDetails | None:
    nested = data.get("gift")
    if not isinstance(nested, dict):
        return None
    return GiftDetails(
        gift_id=_read_int(nested, "gift_id"),
        repeat_count=_read_int(nested, "repeat_count"),
        repeat_end=_read_int(nested, "repeat_end"),
        gift_type=_read_int(nested, "gift_type"),
    )


def _decode_gift(data: dict[str, Any]) -> GiftEvent:
    """把一条 ``type == "gift"`` 的 JSON 对象逐字段映射为 ``GiftEvent``。"""
    badges = [
        _decode_badge(item) for item in _read_list(data, "userBadges")
        if isinstance(item, dict)
    ]
    return GiftEvent(
        user_id=_read_str(data, "userId"),
        sec_uid=_read_str(data, "secUid"),
        unique_id=_read_str(data, "uniqueId"),
        nickname=_read_str(data, "nickname"),
        profile_name=_read_str(data, "profileName"),
        profile_picture_url=_read_str(data, "profilePictureUrl"),
        follow_role=_read_int(data, "followRole"),
        user_badges=badges,
        user_scene_types=_read_int_list(data, "userSceneTypes"),
        user_details=_decode_user_details(_read_object(data, "userDetails")),
        follow_info=_decode_follow_info(_read_object(data, "followInfo")),
        is_moderator=_read_bool(data, "isModerator"),
        is_new_gifter=_read_bool(data, "isNewGifter"),
        is_subscriber=_read_bool(data, "isSubscriber"),
        top_gifter_rank=_read_optional_int(data, "topGifterRank"),
        gifter_level=_read_int(data, "gifterLevel"),
        team_member_level=_read_int(data, "teamMemberLevel"),
        gift_id=_read_int(data, "giftId"),
        gift_name=_read_str(data, "giftName"),
        gift_picture_url=_read_str(data, "giftPictureUrl"),
        diamond_count=_read_int(data, "diamondCount"),
        gift_type=_read_int(data, "giftType"),
        describe=_read_str(data, "describe"),
        repeat_count=_read_int(data, "repeatCount"),
        repeat_end=_read_bool(data, "repeatEnd"),
        combo=_read_int(data, "combo"),
        group_id=_read_str(data, "groupId"),
        gift=_decode_gift_details(data),
        msg_id=_read_str(data, "msgId"),
        create_time=_read_str(data, "createTime"),
        display_type=_read_str(data, "displayType"),
        label=_read_str(data, "label"),
        timestamp=_read_str(data, "timestamp"),
        receiver_user_id=_read_str(data, "receiverUserId"),
    )


# ── 公共接口 ──────────────────────────────────────────────────────────

def decode_frame(raw: str) -> DecodedEvent:
    """解码一帧文本消息。

    任何解析错误或结构不符都会被归类为 ``OtherEvent``，异常不会逃出本函数。

    Args:
        raw: 从 WebSocket 收到的原始文本。

    Returns:
        ``GiftEvent``（``type == "gift"``）或携带原文的 ``OtherEvent``。
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError, RecursionError):
        # 嵌套过深的帧会让 json 触发 RecursionError
        return OtherEvent(tag="malformed", payload=str(raw))

    if not isinstance(data, dict):
        return OtherEvent(tag="non_object", payload=raw)

    if "type" not in data:
        return OtherEvent(tag="untyped", payload=raw)

    message_type = data["type"]
    if message_type != GIFT_MESSAGE_TYPE:
        return OtherEvent(
            tag="unrecognized",
            message_type=message_type if isinstance(message_type, str) else None,
            payload=raw,
        )

    try:
        return _decode_gift(data)
    except ValidationError as e:
        logger.warning("礼物消息字段映射失败: %s", e)
        return OtherEvent(tag="malformed", message_type=GIFT_MESSAGE_TYPE, payload=raw)


def encode_handshake(api_key: str, username: str) -> str:
    """生成连接建立后的握手消息 ``{"apiKey": ..., "username": ...}``。"""
    return json.dumps(
        {"apiKey": api_key, "username": username},
        ensure_ascii=False,
        separators=(",", ":"),
    )


def encode_gift(event: GiftEvent) -> str:
    """把礼物事件编码为线上 camelCase JSON。"""
    return json.dumps(event.model_dump(mode="json", by_alias=True), ensure_ascii=False)
