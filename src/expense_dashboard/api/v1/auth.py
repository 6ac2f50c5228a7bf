"""Upstream connectivity endpoints."""

from fastapi import APIRouter, Depends

from expense_dashboard.api.deps import get_ramp_client
from expense_dashboard.services.ramp_client import RampClient

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post(
    "/token",
    summary="Check upstream connectivity",
    description="Authenticates against the Ramp API and reads the business record.",
)
async def check_connection(client: RampClient = Depends(get_ramp_client)):
    result = await client.health_check()
    return {"success": result["status"] == "ok", **result}


@router.get("/token", summary="Show upstream client configuration")
async def get_client_config(client: RampClient = Depends(get_ramp_client)):
    """Client configuration. The client secret is never included."""
    return {"success": True, "config": client.get_config()}
