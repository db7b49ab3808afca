from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/healthz")
def healthz():
    return {"ok": True}


@router.get("/readyz")
def readyz(request: Request):
    s = request.app.state.settings
    return {
        "ready": bool(s.VERIFIER_URL),
        "store": s.STORE_BACKEND,
    }
