"""API v1 router aggregating all endpoints."""

from fastapi import APIRouter

from oos_engine.api.v1 import change_log, health, inspections, rule_versions, sources, triage

api_router = APIRouter()

# Health check
api_router.include_router(
    health.router,
    prefix="/health",
    tags=["health"],
)

# Rule versions and their rules
api_router.include_router(rule_versions.router)

# Inspections and findings
api_router.include_router(inspections.router)

# Triage
api_router.include_router(triage.router)

# Regulatory sources
api_router.include_router(sources.router)

# Change log
api_router.include_router(change_log.router)
