from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import async_sessionmaker

from studydash.api.deps import get_access_token
from studydash.models.base import get_session_factory
from studydash.schemas.auth import SessionResponse, SignInRequest
from studydash.services.errors import StoreError
from studydash.services.store_client import StoreClient
from studydash.services.workspace import drop_workspace

router = APIRouter()


@router.post("/sign-in", response_model=SessionResponse, status_code=201)
async def sign_in(
    payload: SignInRequest,
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    store = StoreClient(session_factory)
    try:
        session = await store.sign_in(payload.email)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Database connection not available: {e}")
    return SessionResponse(**asdict(session))


@router.get("/session", response_model=SessionResponse)
async def current_session(
    access_token: Optional[str] = Depends(get_access_token),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    store = StoreClient(session_factory, access_token=access_token)
    try:
        session = await store.get_session()
    except StoreError as e:
        raise HTTPException(status_code=503, detail=f"Database connection not available: {e}")
    if session is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return SessionResponse(**asdict(session))


@router.post("/sign-out", status_code=204)
async def sign_out(
    access_token: Optional[str] = Depends(get_access_token),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    if not access_token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    await StoreClient(session_factory, access_token=access_token).sign_out()
    drop_workspace(access_token)
