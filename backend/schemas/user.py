from pydantic import BaseModel, ConfigDict, EmailStr
from typing import Literal, Optional


# Signed-in user as returned by /me
class UserResponse(BaseModel):
    id: int
    email: EmailStr
    full_name: Optional[str] = None
    role: Literal["admin", "acc", "tech"]
    status: Literal["active", "inactive"]

    model_config = ConfigDict(from_attributes=True)
