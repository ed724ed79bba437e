from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

LINK_PASSWORD_MAX_LENGTH = 1024


class UserCreate(BaseModel):
    name: str
    email: EmailStr
    password: str


class UserLogin(BaseModel):
    email: EmailStr
    password: str


class LinkCreate(BaseModel):
    original_url: Optional[str] = Field(None, alias="originalUrl")
    custom_alias: Optional[str] = Field(None, alias="customAlias")
    expires_at: Optional[datetime] = Field(None, alias="expiresAt")
    tags: Optional[List[str]] = None
    password: Optional[str] = Field(None, max_length=LINK_PASSWORD_MAX_LENGTH)

    class Config:
        populate_by_name = True
