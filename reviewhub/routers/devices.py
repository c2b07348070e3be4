from fastapi import APIRouter, Depends

from reviewhub.schemas.device import DeviceRegister
from reviewhub.schemas.identity import Identity
from reviewhub.services.container import ServiceContainer
from reviewhub.utils.dependencies import get_current_identity, get_services


router = APIRouter(prefix="/devices", tags=["push"])


@router.post("/register")
async def register_device(payload: DeviceRegister, current: Identity = Depends(get_current_identity), services: ServiceContainer = Depends(get_services)):
    doc = await services.devices.register(current.id, payload.platform, payload.token)
    return {"ok": True, "device": {"platform": doc["platform"], "token": doc["token"]}}
