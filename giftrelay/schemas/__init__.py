"""
giftrelay.schemas
~~~~~~~~~~~~~~~~~
Pydantic schemas and models for the relay.
"""
from giftrelay.schemas.api_response import ApiResponse
from giftrelay.schemas.gift_events import (
    DecodedEvent,
    FollowInfo,
    GiftDetails,
    GiftEvent,
    OtherEvent,
    UserBadge,
    UserDetails,
)
from giftrelay.schemas.relay_interactions import (
    ConnectRequest,
    ConnectResponseData,
    ConnectionStatusData,
)

# Call model_rebuild to resolve forward references in generic Pydantic models.
ApiResponse.model_rebuild()
