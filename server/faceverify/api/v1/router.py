from fastapi import APIRouter

from faceverify.api.v1 import verify

router = APIRouter(prefix="/v1")

router.include_router(verify.router)
