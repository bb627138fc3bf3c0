# prompts.py
"""
Instruction templates sent to the image generation provider.

There are exactly two templates: one keeps the original scene and swaps the
upholstery ("ambientato"), the other isolates the sofa on a neutral studio
backdrop ("scontornato"). `build_instruction` picks one of them by mode and
is a pure function of its inputs.
"""

from enum import Enum
from typing import Optional


class TemplateMode(str, Enum):
    GROUNDED = "grounded"
    ISOLATED = "isolated"

    @classmethod
    def from_output_mode(cls, output_mode: Optional[str]) -> "TemplateMode":
        """Maps the wire `outputMode` value; anything but 'scontornato' is grounded."""
        if output_mode == "scontornato":
            return cls.ISOLATED
        return cls.GROUNDED


# Short material descriptions for the built-in fabric names.
FABRIC_DESCRIPTIONS = {
    "velvet": "luxurious velvet fabric",
    "leather": "genuine leather",
    "linen": "natural linen fabric",
    "microfiber": "soft microfiber fabric",
    "cotton": "high-quality cotton fabric",
    "bouclé": "textured bouclé fabric",
}

# Used by the dual-image request shape, where the fabric comes from a photo.
REFERENCE_FABRIC_DESCRIPTION = (
    "Apply the exact fabric shown in the SECOND image (the fabric sample) to the sofa "
    "in the FIRST image. Reproduce its texture, weave, pattern and color faithfully, "
    "scaled realistically to the size of the sofa."
)

ISOLATED_TEMPLATE = """You are an expert photo editor and product photographer.

I have an image of a sofa/couch. I need you to:
1. ISOLATE the sofa from the background (remove the background completely)
2. Place the sofa on a clean, neutral LIGHT GRAY studio background (#E5E5E5 or similar)
3. Change the sofa upholstery: {description}

CRITICAL REQUIREMENTS:
- Remove ALL background elements - room, walls, floor, other furniture
- Place sofa on a clean, seamless light gray gradient studio background
- Keep the EXACT same sofa shape, design and proportions
- Change only the fabric texture and color as specified
- Add soft, professional studio lighting
- Add subtle soft shadow under the sofa for realism
- OUTPUT MUST BE HIGH RESOLUTION and photorealistic quality
- The result should look like a professional product photo for e-commerce

Generate the edited image at the highest possible quality."""

GROUNDED_TEMPLATE = """You are an expert interior designer and professional photo editor.

I have an image of a sofa/couch. EDIT this image to change ONLY the upholstery/fabric of the sofa.

{description}

CRITICAL REQUIREMENTS:
- Keep the EXACT same sofa shape, design and dimensions
- Keep the EXACT same room/background and camera angle
- Keep all other furniture and objects unchanged
- Only change the fabric texture and color of the sofa
- OUTPUT MUST BE HIGH RESOLUTION and photorealistic quality
- Maintain proper lighting, shadows and reflections on the new fabric
- The fabric should have realistic texture detail
- Match the lighting conditions of the original photo
- Keep all fine details sharp and clear

Generate the edited image at the highest possible quality."""

TEMPLATES = {
    TemplateMode.GROUNDED: GROUNDED_TEMPLATE,
    TemplateMode.ISOLATED: ISOLATED_TEMPLATE,
}


def build_instruction(mode: TemplateMode, description: str) -> str:
    """Renders the instruction for `mode`. An empty description still renders."""
    return TEMPLATES[TemplateMode(mode)].format(description=(description or "").strip())


def build_description(
    fabric_name: str,
    color_name: Optional[str] = None,
    texture_prompt: Optional[str] = None,
) -> str:
    """
    Joins the selected color and fabric into the material description, e.g.
    "Blu Navy luxurious velvet fabric". A stored per-fabric texture prompt is
    appended as an extra sentence.
    """
    fabric = FABRIC_DESCRIPTIONS.get((fabric_name or "").strip().lower(), (fabric_name or "").strip())
    words = [w for w in ((color_name or "").strip(), fabric) if w]
    description = " ".join(words)
    if texture_prompt and texture_prompt.strip():
        fragment = texture_prompt.strip()
        description = f"{description}. {fragment}" if description else fragment
    return description
