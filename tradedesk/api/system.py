"""System API — health check and scheduler status."""

from fastapi import APIRouter, Depends

from tradedesk.api.deps import get_runtime, require_admin
from tradedesk.engine.runtime import Runtime

router = APIRouter(prefix="/api/system", tags=["system"])


@router.get("/health")
def health_check():
    return {"status": "ok"}


@router.get("/scheduler", dependencies=[Depends(require_admin)])
def scheduler_status(runtime: Runtime = Depends(get_runtime)):
    """Current scheduler state with job details."""
    return runtime.scheduler.get_status()
