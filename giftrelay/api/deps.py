from fastapi import Request, WebSocket

from giftrelay.services.gift_client import GiftClient
from giftrelay.services.relay_broadcaster import RelayBroadcaster


def get_gift_client(request: Request) -> GiftClient:
    return request.app.state.gift_client


def get_broadcaster(websocket: WebSocket) -> RelayBroadcaster:
    return websocket.app.state.broadcaster
