from pydantic import BaseModel
from typing import Optional
from datetime import datetime

from schemas.checkout import ShippingDetails


class ProfileResponse(ShippingDetails):
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ProfileUpdate(ShippingDetails):
    pass


class ProfileEnvelope(BaseModel):
    profile: Optional[ProfileResponse] = None
