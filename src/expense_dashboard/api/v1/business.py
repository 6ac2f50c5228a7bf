"""Business profile endpoint."""

from fastapi import APIRouter, Depends

from expense_dashboard.api.deps import get_ramp_client
from expense_dashboard.schemas.transaction import BusinessResponse
from expense_dashboard.services.ramp_client import RampClient

router = APIRouter(prefix="/business", tags=["business"])


@router.get("", response_model=BusinessResponse)
async def get_business(client: RampClient = Depends(get_ramp_client)):
    business = await client.get_business()
    return BusinessResponse(data=business)
