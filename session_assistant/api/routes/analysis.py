"""Analysis Routes — regional payback research and machine recognition.

Invariants:
    - Read-only: never changes the wizard phase or the Session
    - Gateway failures return a null result plus the user-facing message
    - Uploads are limited to images under MAX_IMAGE_BYTES
"""

from fastapi import APIRouter, Depends, File, UploadFile

from session_assistant.api.dependencies import get_wizard
from session_assistant.core.errors import SessionValidationError
from session_assistant.services.wizard import SessionWizard

router = APIRouter(prefix="/api/v1/analysis", tags=["analysis"])

MAX_IMAGE_BYTES = 5 * 1024 * 1024
_IMAGE_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")


async def _read_image(upload: UploadFile) -> tuple[bytes, str]:
    media_type = upload.content_type or ""
    if media_type not in _IMAGE_TYPES:
        raise SessionValidationError(
            f"Unsupported image type '{media_type}'", "image",
        )
    data = await upload.read()
    if not data:
        raise SessionValidationError("Image is empty", "image")
    if len(data) > MAX_IMAGE_BYTES:
        raise SessionValidationError("Image is larger than 5 MB", "image")
    return data, media_type


@router.get("/regional")
async def regional_analysis(wizard: SessionWizard = Depends(get_wizard)):
    result = await wizard.regional_analysis()
    if result is None:
        return {"analysis": None, "sources": [], "error": wizard.state.last_error}
    return {
        "analysis": result.analysis_text,
        "sources": [{"uri": s.uri, "title": s.title} for s in result.sources],
        "error": None,
    }


@router.post("/image")
async def analyze_image(
    image: UploadFile = File(...), wizard: SessionWizard = Depends(get_wizard),
):
    data, media_type = await _read_image(image)
    result = await wizard.analyze_image(data, media_type)
    if result is None:
        return {"machine": None, "error": wizard.state.last_error}
    return {"machine": result.to_dict(), "error": None}


@router.post("/machine-name")
async def identify_machine(
    image: UploadFile = File(...), wizard: SessionWizard = Depends(get_wizard),
):
    data, media_type = await _read_image(image)
    name = await wizard.identify_machine(data, media_type)
    return {"machineName": name, "error": None if name else wizard.state.last_error}


@router.get("/machines")
async def find_machines(wizard: SessionWizard = Depends(get_wizard)):
    return {"machines": await wizard.find_machines()}
