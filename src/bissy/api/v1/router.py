"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.bissy.api.v1 import apikeys, datasources, health, ping, queries

router = APIRouter()

router.include_router(ping.router)
router.include_router(health.router)
router.include_router(datasources.router)
router.include_router(queries.router)
router.include_router(apikeys.router)
