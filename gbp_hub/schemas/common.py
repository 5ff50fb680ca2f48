from pydantic import BaseModel


class StatusResponse(BaseModel):
    status: str


class ErrorDetail(BaseModel):
    error: str
    details: str | None = None
    code: str
