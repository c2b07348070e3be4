from fastapi import APIRouter, Depends, Request

from reviewhub.schemas.identity import Identity
from reviewhub.utils.dependencies import get_current_identity


router = APIRouter(prefix="/presence", tags=["chat"])


@router.get("/{identity_id}")
async def presence(identity_id: str, request: Request, current: Identity = Depends(get_current_identity)):
    """Whether the identity currently holds at least one live connection."""
    tracker = request.app.state.realtime.presence
    connections = await tracker.connections_for(identity_id)
    return {"user_id": identity_id, "online": bool(connections), "connections": len(connections)}
