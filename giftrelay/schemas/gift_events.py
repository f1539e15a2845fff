"""
giftrelay.schemas.gift_events
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

礼物流解码后的事件模型。

``DecodedEvent`` 是 ``GiftEvent`` 与 ``OtherEvent`` 的联合类型：

- ``GiftEvent``  —— ``type == "gift"`` 的礼物消息，字段与线上 JSON 一一对应
  （Python 侧 snake_case，线上 camelCase）。
- ``OtherEvent`` —— 其余所有消息（含非法 JSON），仅用于诊断日志。

所有模型都是不可变的，同一个事件可以安全地交给多个订阅者。
"""
from __future__ import annotations

from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

OtherEventTag = Literal["malformed", "non_object", "untyped", "unrecognized"]


class _WireModel(BaseModel):
    """线上字段为 camelCase 的模型基类。"""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class UserBadge(_WireModel):
    """送礼用户的徽章。"""

    type: str = ""
    privilege_id: str = ""
    level: int = 0
    badge_scene_type: int = 0


class UserDetails(_WireModel):
    """送礼用户的资料详情。"""

    create_time: str = ""
    bio_description: str = ""
    profile_picture_urls: list[str] = Field(default_factory=list)


class FollowInfo(_WireModel):
    """送礼用户的关注数据。"""

    following_count: int = 0
    follower_count: int = 0
    follow_status: int = 0
    push_status: int = 0


class GiftDetails(BaseModel):
    """旧版协议中嵌套的 ``gift`` 子结构，线上字段本身就是 snake_case。

    ``repeat_end`` 在这个结构里是整数标记（1 表示连击结束），
    与外层布尔型 ``repeatEnd`` 相互独立。
    """

    model_config = ConfigDict(frozen=True)

    gift_id: int = 0
    repeat_count: int = 0
    repeat_end: int = 0
    gift_type: int = 0


class GiftEvent(_WireModel):
    """一条礼物消息。

    外层 ``repeat_count`` / ``repeat_end`` / ``combo`` 与嵌套的 ``gift``
    是两套独立的连击计数，这里原样保留，由展示层决定以哪套为准。

    Attributes:
        user_id: 送礼用户 ID。
        nickname: 送礼用户昵称。
        profile_picture_url: 送礼用户头像。
        gift_id: 礼物 ID。
        gift_name: 礼物名称。
        gift_picture_url: 礼物图标。
        diamond_count: 单个礼物价值（钻石）。
        repeat_count: 同一连击内的重复次数。
        repeat_end: 连击是否已结束。
        combo: 连击内单调递增的计数，展示层据此决定重播还是延续动画。
        gift: 旧版协议的嵌套计数结构，缺失时为 ``None``。
    """

    type: Literal["gift"] = "gift"

    # ── 送礼用户 ──
    user_id: str = ""
    sec_uid: str = ""
    unique_id: str = ""
    nickname: str = ""
    profile_name: str = ""
    profile_picture_url: str = ""
    follow_role: int = 0
    user_badges: list[UserBadge] = Field(default_factory=list)
    user_scene_types: list[int] = Field(default_factory=list)
    user_details: UserDetails = Field(default_factory=UserDetails)
    follow_info: FollowInfo = Field(default_factory=FollowInfo)
    is_moderator: bool = False
    is_new_gifter: bool = False
    is_subscriber: bool = False
    top_gifter_rank: int | None = None
    gifter_level: int = 0
    team_member_level: int = 0

    # ── 礼物 ──
    gift_id: int = 0
    gift_name: str = ""
    gift_picture_url: str = ""
    diamond_count: int = 0
    gift_type: int = 0
    describe: str = ""

    # ── 连击 ──
    repeat_count: int = 0
    repeat_end: bool = False
    combo: int = 0
    group_id: str = ""
    gift: GiftDetails | None = None

    # ── 消息元数据 ──
    msg_id: str = ""
    create_time: str = ""
    display_type: str = ""
    label: str = ""
    timestamp: str = ""
    receiver_user_id: str = ""


class OtherEvent(BaseModel):
    """非礼物消息的诊断分类。

    Attributes:
        tag: 分类标签：malformed（非法 JSON）/ non_object（不是 JSON 对象）/
            untyped（缺少 type 字段）/ unrecognized（type 不是 gift）。
        message_type: 原始 ``type`` 字段的值（存在时）。
        payload: 原始帧文本，不做任何修改。
    """

    model_config = ConfigDict(frozen=True)

    tag: OtherEventTag
    message_type: str | None = None
    payload: str


DecodedEvent = Union[GiftEvent, OtherEvent]
