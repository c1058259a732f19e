"""
API router aggregation

Route modules:
- auth: sign-in
- user: profile
- scans: plant analysis, history, PDF export
- billing: subscription checkout, webhook, management, cron sweeps
- utils: health check
"""
from fastapi import APIRouter

from plantscan.api.routes import auth, billing, scans, user, utils

api_router = APIRouter()

api_router.include_router(auth.router)  # /auth/*
api_router.include_router(user.router)  # /user/*
api_router.include_router(scans.router)  # /scans/*
api_router.include_router(billing.router)  # /billing/*
api_router.include_router(utils.router)  # /utils/*
