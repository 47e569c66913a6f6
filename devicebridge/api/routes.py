from __future__ import annotations

from fastapi import APIRouter, Depends

from ..core.timeutil import now_utc
from ..services.runtime import DriverRuntime

router = APIRouter()


# Overridden in main via app.dependency_overrides
def get_runtime() -> DriverRuntime:
    raise RuntimeError("Runtime dependency not configured")


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.get("/live")
async def get_live(runtime: DriverRuntime = Depends(get_runtime)):
    snap = runtime.snapshot()
    snap["now_utc"] = now_utc().isoformat()
    snap["bus_connected"] = getattr(runtime.bus, "connected", None)
    return snap
