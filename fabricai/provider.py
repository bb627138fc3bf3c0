# provider.py
"""
Image generation provider (Google Gemini).

The gateway only depends on the small `ProviderResponse` shape defined here,
so tests can swap the Gemini client for a stub through `get_provider_factory`.
"""

import base64
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from google import genai
from google.genai import types

from fabricai.settings import settings

log = logging.getLogger(__name__)

INPUT_MIME_TYPE = "image/jpeg"


@dataclass
class ProviderPart:
    """One part of a provider reply: either inline image data or text."""
    text: Optional[str] = None
    image_base64: Optional[str] = None
    mime_type: Optional[str] = None

    @property
    def is_image(self) -> bool:
        return bool(self.image_base64)


@dataclass
class ProviderResponse:
    parts: List[ProviderPart] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n".join(p.text for p in self.parts if p.text)

    @classmethod
    def from_genai(cls, response) -> "ProviderResponse":
        """Flattens a google-genai GenerateContentResponse into ordered parts."""
        parts: List[ProviderPart] = []
        for candidate in getattr(response, "candidates", None) or []:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                inline_data = getattr(part, "inline_data", None)
                data = getattr(inline_data, "data", None) if inline_data is not None else None
                if data:
                    # The SDK hands back raw bytes; the wire contract is raw base64.
                    encoded = data if isinstance(data, str) else base64.b64encode(data).decode("ascii")
                    parts.append(ProviderPart(image_base64=encoded, mime_type=inline_data.mime_type))
                elif getattr(part, "text", None):
                    parts.append(ProviderPart(text=part.text))
        return cls(parts=parts)


class GeminiProvider:
    """Multimodal prompt (images + instruction) -> image or text, via Gemini."""

    def __init__(self, api_key: str, model: Optional[str] = None, timeout_ms: Optional[int] = None):
        self.model = model or settings.GEMINI_IMAGE_MODEL
        self.client = genai.Client(
            api_key=api_key,
            http_options=types.HttpOptions(timeout=timeout_ms or settings.GEMINI_TIMEOUT_MS),
        )

    async def generate(self, images: List[str], instruction: str) -> ProviderResponse:
        """
        Sends the base64 images (assumed JPEG) followed by the instruction text.
        Errors from the SDK propagate unchanged so the caller can classify them.
        """
        contents = [
            types.Part.from_bytes(data=base64.b64decode(image), mime_type=INPUT_MIME_TYPE)
            for image in images
        ]
        contents.append(instruction)

        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=contents,
            config=types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"]),
        )
        return ProviderResponse.from_genai(response)


ProviderFactory = Callable[[str], GeminiProvider]


def get_provider_factory() -> ProviderFactory:
    """FastAPI dependency: builds a provider bound to a request's credential."""
    return GeminiProvider
