from pydantic import BaseModel


class TotpSetupResponse(BaseModel):
    enabled: bool
    issuer: str
    account_name: str
    secret: str | None = None
    qr_uri: str | None = None
