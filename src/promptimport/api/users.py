from fastapi import APIRouter, Depends
from typing import Dict

from ..domain.models import Session
from ..domain.users import UserStore
from . import deps
from .schemas import CivitAIKeyRequest

router = APIRouter()


@router.put("/users/me/civitai-key")
def set_civitai_key(
    body: CivitAIKeyRequest,
    session: Session = Depends(deps.require_session),
    users: UserStore = Depends(deps.get_user_store),
) -> Dict[str, str]:
    """Store the caller's CivitAI API key; registry lookups run with it."""
    users.set_civitai_key(session.user_id, body.key.strip())
    return {"message": "CivitAI API key saved."}


@router.delete("/users/me/civitai-key")
def clear_civitai_key(
    session: Session = Depends(deps.require_session),
    users: UserStore = Depends(deps.get_user_store),
) -> Dict[str, str]:
    if users.clear_civitai_key(session.user_id):
        return {"message": "CivitAI API key removed."}
    return {"message": "No CivitAI API key was stored."}
