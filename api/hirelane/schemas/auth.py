from pydantic import BaseModel, Field

from hirelane.core.auth import Role


class SignUpRequest(BaseModel):
    email: str = Field(min_length=3)
    password: str
    role: Role | None = None


class SignInRequest(BaseModel):
    email: str = Field(min_length=3)
    password: str


class AuthUserOut(BaseModel):
    id: str
    email: str | None = None
    role_hint: Role | None = None


class AuthSessionOut(BaseModel):
    user: AuthUserOut
    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int | None = None
