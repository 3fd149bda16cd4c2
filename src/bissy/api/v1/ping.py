"""Liveness probes for clients: plain and authenticated ping."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from src.bissy.api.deps import get_principal
from src.bissy.core.principal import Principal

router = APIRouter(tags=["ping"])


@router.get("/", response_class=PlainTextResponse, include_in_schema=False)
async def home() -> str:
    return "querycache: using cache, saving cash\n"


@router.get("/ping")
async def ping() -> dict:
    return {"message": "pong"}


@router.get("/authping")
async def authping(principal: Principal = Depends(get_principal)) -> dict:
    return {"message": "pong"}
