from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

router = APIRouter(tags=["health"])


@router.get("/health")
async def health():
    """Basic health check."""
    return {"status": "ok"}


@router.get("/health/ready")
async def health_ready(request: Request):
    """Readiness check with an upstream round trip."""
    client = getattr(request.app.state, "ramp_client", None)
    if client is None:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not ready", "upstream": "not configured"},
        )

    result = await client.health_check()
    if result["status"] != "ok":
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not ready", "upstream": "unreachable", "timestamp": result["timestamp"]},
        )
    return {"status": "ready", "upstream": "connected", "timestamp": result["timestamp"]}
