from pydantic import BaseModel, EmailStr, Field
from typing import Optional


class SupportRequest(BaseModel):
    full_name: str = Field(min_length=1, max_length=255)
    email: EmailStr
    subject: str = Field(min_length=1, max_length=150)
    message: str = Field(min_length=1, max_length=2000)
    order_number: Optional[str] = Field(None, min_length=1, max_length=32)


class SupportResponse(BaseModel):
    message: str
