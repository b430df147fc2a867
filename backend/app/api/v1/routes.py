from fastapi import APIRouter

from app.api.v1 import coupons, promotions

api_router = APIRouter()

api_router.include_router(promotions.router)
api_router.include_router(coupons.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
