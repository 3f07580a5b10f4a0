"""Presence over HTTP.

Learn: Same snapshot the socket pull (`users:get-online`) returns, for
clients that want the online list before (or without) opening a socket.
"""

from fastapi import APIRouter, Depends

from murmur.api.deps import get_gateway
from murmur.auth.dependencies import get_current_user
from murmur.realtime.events import PresenceSnapshot
from murmur.realtime.gateway import RealtimeGateway

router = APIRouter(prefix="/realtime")


@router.get(
    "/online",
    response_model=PresenceSnapshot,
    dependencies=[Depends(get_current_user)],
)
async def online_users(gateway: RealtimeGateway = Depends(get_gateway)):
    return gateway.snapshot()
