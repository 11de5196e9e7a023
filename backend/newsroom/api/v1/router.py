"""API v1 main router - aggregates all endpoint routers."""

from fastapi import APIRouter

from newsroom.api.v1 import cron

api_router = APIRouter()

api_router.include_router(cron.router)
