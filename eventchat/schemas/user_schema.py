from pydantic import BaseModel, EmailStr
from datetime import datetime
from typing import Optional


class UserLocation(BaseModel):
    city: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    address: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None

    def label(self) -> Optional[str]:
        """"City, Region" (or whichever parts are known), None when nothing is known."""
        parts = [p for p in (self.city, self.region) if p]
        if parts:
            return ", ".join(parts)
        return self.country or self.address


# Request schema for user registration
class UserCreate(BaseModel):
    username: str
    name: str
    email: EmailStr
    password: str


# Response schema (what we send back to client)
class UserOut(BaseModel):
    id: str
    username: str
    name: str
    email: EmailStr
    created_at: datetime
    last_location: Optional[UserLocation] = None


# Schema for JWT token response
class Token(BaseModel):
    access_token: str
    token_type: str
