from pydantic import BaseModel
from typing import Optional


# Request schema for a newsletter signup
class SignupRequest(BaseModel):
    # Plain str, not EmailStr: the route applies the same email regex as the
    # checkout form and answers with its own 400 body instead of a 422
    email: Optional[str] = None
    first_name: Optional[str] = None


# Response schema for a newsletter signup
class SignupResponse(BaseModel):
    success: bool
    message: str
    duplicate: Optional[bool] = None
    resubscribed: Optional[bool] = None
