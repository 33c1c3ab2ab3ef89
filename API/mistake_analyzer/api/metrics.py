from fastapi import APIRouter

from mistake_analyzer.core.app_metrics import get_metrics
from mistake_analyzer.core.resilience import get_breakers_status

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("/app")
async def app_metrics():
    """Request latency (p50/p95), error rate, model-call outcomes and alerts."""
    out = get_metrics()
    breakers = get_breakers_status()
    out["breakers"] = breakers
    if any(state.get("state") == "open" for state in breakers.values()):
        out["alerts"] = list(out.get("alerts", [])) + ["llm_circuit_open"]
    return out


@router.get("/resilience")
async def resilience_metrics():
    return {"breakers": get_breakers_status()}
