from fastapi import APIRouter, Depends, WebSocket

from reviewhub.services.container import ServiceContainer
from reviewhub.utils.dependencies import get_services
from reviewhub.utils.security import extract_bearer


router = APIRouter(tags=["realtime"])


@router.websocket("/chat")
async def realtime_socket(websocket: WebSocket, services: ServiceContainer = Depends(get_services)):
    # bearer token via ?token=... or the Authorization header
    token = websocket.query_params.get("token") or extract_bearer(websocket.headers.get("authorization"))
    await services.gateway.serve(websocket, token)
