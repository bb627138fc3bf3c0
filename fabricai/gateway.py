# gateway.py
"""
Generation gateway: validates a request, builds the instruction, calls the
provider with bounded retry, and returns a normalized JSON result.

Handles:
- Legacy single-image requests (`imageBase64` + `prompt`)
- Dual-image requests (`sofaImageBase64` + `fabricImageBase64`)
- Linear backoff on transient provider overload (HTTP 503)
- Soft "no image" outcomes carrying the provider's explanation
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Tuple

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from fabricai.auth import get_optional_user
from fabricai.db import get_db
from fabricai.errors import ConfigurationError, InvalidRequest, ServiceError
from fabricai.models import GenerationLog, Profile
from fabricai.prompts import REFERENCE_FABRIC_DESCRIPTION, TemplateMode, build_instruction
from fabricai.provider import GeminiProvider, ProviderFactory, get_provider_factory
from fabricai.settings import Settings, get_settings

log = logging.getLogger(__name__)

router = APIRouter(prefix="/gemini", tags=["Gateway"])

# Substring the provider puts in the error message when it is overloaded.
TRANSIENT_ERROR_CODE = "503"

MISSING_CREDENTIAL = "API key required. Set GOOGLE_API_KEY or pass apiKey in request."
MISSING_IMAGE = "An image is required (imageBase64)."
MISSING_DUAL_IMAGES = "Both sofa image and fabric texture image are required."


# ===================================================================
# RESULT TYPES
# ===================================================================

class GenerationStatus(str, Enum):
    OK = "ok"
    NO_IMAGE = "no_image"
    ERROR = "error"


@dataclass
class GenerationResult:
    status: GenerationStatus
    image_base64: Optional[str] = None
    message: Optional[str] = None

    @property
    def status_code(self) -> int:
        return {GenerationStatus.OK: 200, GenerationStatus.NO_IMAGE: 400}.get(self.status, 500)


# ===================================================================
# SUBMISSION PIPELINE
# ===================================================================

def resolve_credential(request_key: Optional[str], default_key: Optional[str]) -> str:
    """The request's own key wins; otherwise the server-held default is used."""
    credential = (request_key or "").strip() or (default_key or "").strip()
    if not credential:
        raise ConfigurationError(MISSING_CREDENTIAL)
    return credential


def is_transient(exc: Exception) -> bool:
    """True when the provider signalled a temporary overload."""
    return getattr(exc, "code", None) == 503 or TRANSIENT_ERROR_CODE in str(exc)


async def submit(
    images: List[str],
    instruction: str,
    credential: str,
    *,
    provider_factory: ProviderFactory = GeminiProvider,
    max_attempts: int = 3,
    retry_delay: float = 2.0,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> GenerationResult:
    """
    Calls the provider and extracts the first image part of its reply.

    Only transient overload errors are retried. The wait after attempt n is
    `n * retry_delay` (2s then 4s with the defaults): it grows linearly, it
    does not double. When every attempt fails the last error is raised.
    """
    if not credential:
        raise ConfigurationError(MISSING_CREDENTIAL)
    if not images or not all(images):
        raise InvalidRequest(MISSING_IMAGE)

    provider = provider_factory(credential)

    attempt = 1
    while True:
        try:
            log.info(f"Provider call attempt {attempt}/{max_attempts} with {len(images)} image(s)")
            response = await provider.generate(images, instruction)
            break
        except Exception as e:
            if attempt >= max_attempts or not is_transient(e):
                log.error(f"Provider call failed on attempt {attempt}: {e}")
                raise
            delay = attempt * retry_delay
            log.warning(f"Provider overloaded (attempt {attempt}/{max_attempts}), retrying in {delay:g}s")
            await sleep(delay)
            attempt += 1

    for part in response.parts:
        if part.is_image:
            log.info("Image generated successfully")
            return GenerationResult(status=GenerationStatus.OK, image_base64=part.image_base64)

    log.info(f"No image in provider response: {response.text}")
    return GenerationResult(status=GenerationStatus.NO_IMAGE, message=response.text)


# ===================================================================
# HTTP SURFACE
# ===================================================================

class EditRequest(BaseModel):
    """Accepts both the legacy single-image and the dual-image body shapes."""
    image_base64: Optional[str] = Field(None, alias="imageBase64")
    prompt: Optional[str] = None
    sofa_image_base64: Optional[str] = Field(None, alias="sofaImageBase64")
    fabric_image_base64: Optional[str] = Field(None, alias="fabricImageBase64")
    api_key: Optional[str] = Field(None, alias="apiKey")
    output_mode: Optional[str] = Field(None, alias="outputMode")

    class Config:
        populate_by_name = True

    @property
    def is_legacy(self) -> bool:
        return self.image_base64 is not None or self.prompt is not None

    def images_and_description(self) -> Tuple[List[str], str]:
        if self.is_legacy:
            if not self.image_base64:
                raise InvalidRequest(MISSING_IMAGE)
            return [self.image_base64], self.prompt or ""

        if not self.sofa_image_base64 or not self.fabric_image_base64:
            raise InvalidRequest(MISSING_DUAL_IMAGES)
        return [self.sofa_image_base64, self.fabric_image_base64], REFERENCE_FABRIC_DESCRIPTION


async def record_generation(db: AsyncSession, user: Optional[Profile], mode: TemplateMode) -> None:
    """Appends a usage log row and bumps the caller's generation counter."""
    try:
        db.add(GenerationLog(user_id=user.id if user else None, template_mode=mode.value))
        if user is not None:
            user.generations_used = (user.generations_used or 0) + 1
        await db.commit()
    except Exception as e:
        await db.rollback()
        log.exception(f"Could not record generation usage: {e}")


@router.post("/edit")
async def edit_image(
    payload: EditRequest,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[Profile] = Depends(get_optional_user),
    config: Settings = Depends(get_settings),
    provider_factory: ProviderFactory = Depends(get_provider_factory),
):
    """Replaces the sofa's upholstery in the uploaded photo."""
    credential = resolve_credential(payload.api_key, config.GOOGLE_API_KEY)
    images, description = payload.images_and_description()
    mode = TemplateMode.from_output_mode(payload.output_mode)
    instruction = build_instruction(mode, description)

    log.info(f"Processing image with Gemini... Mode: {mode.value}")
    try:
        result = await submit(
            images,
            instruction,
            credential,
            provider_factory=provider_factory,
            max_attempts=config.GENERATION_MAX_ATTEMPTS,
            retry_delay=config.GENERATION_RETRY_DELAY,
        )
    except ServiceError:
        raise
    except Exception as e:
        log.error(f"Gemini API error: {e}")
        raise ServiceError(str(e))

    if result.status == GenerationStatus.NO_IMAGE:
        return JSONResponse(
            status_code=result.status_code,
            content={"success": False, "error": "No image generated", "message": result.message},
        )

    await record_generation(db, current_user, mode)
    return {"success": True, "image": result.image_base64}
