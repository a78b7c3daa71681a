from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/ready")
def ready(request: Request):
    gateway_ready = getattr(request.app.state, "market_data_gateway", None) is not None
    return {
        "status": "ready" if gateway_ready else "not_ready",
        "market_data_configured": gateway_ready,
    }
