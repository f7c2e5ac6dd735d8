from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile

from faceverify import config
from faceverify.models import StatusOut, VerificationResult
from faceverify.services.capture import capture_snapshot
from faceverify.services.workflow import CoordinatorRegistry, Superseded

router = APIRouter(tags=["verification"])

DEFAULT_CLIENT_ID = "default"


def get_registry(request: Request) -> CoordinatorRegistry:
    return request.app.state.registry


async def _submit(registry: CoordinatorRegistry, client_id: str, image) -> VerificationResult:
    coordinator = registry.get(client_id or DEFAULT_CLIENT_ID)
    try:
        return await coordinator.submit(image)
    except Superseded:
        raise HTTPException(status_code=409, detail="Superseded by a newer request")


@router.post("/verify", response_model=VerificationResult)
async def verify_upload(
    file: UploadFile | None = File(default=None),
    client_id: str = Form(default=DEFAULT_CLIENT_ID),
    registry: CoordinatorRegistry = Depends(get_registry),
):
    """Check an uploaded photo against every stored face; store it if unseen."""
    image_bytes: bytes | None = None
    if file is not None:
        image_bytes = await file.read()
    if not image_bytes:
        raise HTTPException(status_code=400, detail="Missing image upload")

    return await _submit(registry, client_id, image_bytes)


@router.post("/verify/camera", response_model=VerificationResult)
async def verify_camera(
    client_id: str = Form(default=DEFAULT_CLIENT_ID),
    registry: CoordinatorRegistry = Depends(get_registry),
):
    """Same as /verify, with the image taken from the server's camera."""

    async def acquire() -> bytes:
        return await capture_snapshot(
            device_index=config.CAMERA_INDEX,
            warmup_seconds=config.CAMERA_WARMUP_SECONDS,
            width=config.CAMERA_WIDTH,
            height=config.CAMERA_HEIGHT,
            timeout=config.REQUEST_TIMEOUT_SECONDS + config.CAMERA_WARMUP_SECONDS,
        )

    return await _submit(registry, client_id, acquire)


@router.get("/status/{client_id}", response_model=StatusOut)
async def get_status(client_id: str, registry: CoordinatorRegistry = Depends(get_registry)):
    coordinator = registry.peek(client_id)
    if coordinator is None:
        return StatusOut(
            client_id=client_id,
            generation=0,
            result=VerificationResult.for_status("idle"),
        )
    return StatusOut(client_id=client_id, generation=coordinator.generation, result=coordinator.result)
