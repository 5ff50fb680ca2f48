from fastapi import APIRouter, Depends

from gbp_hub.schemas.me import MeOut
from gbp_hub.services.auth import Actor, get_actor

router = APIRouter()

@router.get("/me", response_model=MeOut)
async def me(actor: Actor = Depends(get_actor)) -> MeOut:
    return MeOut(
        api_key_id=actor.api_key_id,
        organization_id=actor.organization_id,
        user_id=actor.user_id,
        role=actor.role,
    )
