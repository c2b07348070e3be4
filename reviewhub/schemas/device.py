from pydantic import BaseModel, Field

from reviewhub.models.device import PushPlatform


class DeviceRegister(BaseModel):

    platform: PushPlatform
    token: str = Field(min_length=1)
