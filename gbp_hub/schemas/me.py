from pydantic import BaseModel


class MeOut(BaseModel):
    api_key_id: str
    organization_id: str
    user_id: str
    role: str
