# src/promptimport/api/deps.py
from __future__ import annotations
from typing import Mapping, Optional

from fastapi import Depends, Header, HTTPException, Request

from ..core.config import Settings
from ..domain.catalog import ModelCatalog
from ..domain.jobs import JobOrchestrator
from ..domain.models import Session
from ..domain.users import UserStore

USER_HEADER = "X-User-Id"
ROLE_HEADER = "X-User-Role"
ADMIN_ROLE = "admin"


def get_settings(request: Request) -> Settings:
    return request.app.state.settings

def get_orchestrator(request: Request) -> JobOrchestrator:
    return request.app.state.orchestrator

def get_user_store(request: Request) -> UserStore:
    return request.app.state.users

def get_catalog(request: Request) -> ModelCatalog:
    return request.app.state.catalog


def build_session(user_id: Optional[str], role: Optional[str], users: UserStore) -> Optional[Session]:
    """
    Identity is supplied by the host application in front of this service;
    we only read the headers it sets.
    """
    if not user_id or not user_id.strip():
        return None
    user_id = user_id.strip()
    return Session(
        user_id=user_id,
        is_admin=(role or "").strip().lower() == ADMIN_ROLE,
        civitai_api_key=users.get_civitai_key(user_id),
    )

def session_from_headers(headers: Mapping[str, str], users: UserStore) -> Optional[Session]:
    return build_session(headers.get(USER_HEADER), headers.get(ROLE_HEADER), users)


def require_session(
    x_user_id: Optional[str] = Header(default=None, alias=USER_HEADER),
    x_user_role: Optional[str] = Header(default=None, alias=ROLE_HEADER),
    users: UserStore = Depends(get_user_store),
) -> Session:
    session = build_session(x_user_id, x_user_role, users)
    if session is None:
        raise HTTPException(status_code=401, detail=f"{USER_HEADER} header required.")
    return session
