from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    username: str = Field(max_length=1024)
    password: str = Field(max_length=1024)
    totp_code: str | None = Field(default=None, alias="totpCode", max_length=64)


class LoginResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    token: str
    requires_2fa: bool = Field(alias="requires2FA")
    expires_in: int = Field(alias="expiresIn")


class SessionUser(BaseModel):
    username: str
    role: str
    exp: int


class VerifyResponse(BaseModel):
    valid: bool = True
    user: SessionUser


class LogoutResponse(BaseModel):
    success: bool = True
