# generation.py
import logging
from typing import Any, Dict, Optional

from fabricai.client.api import ApiClient, GenerationTimeout, QuotaExceeded, RequestTimeout, StoreError
from fabricai.client.gallery import GalleryController
from fabricai.client.imaging import ImageProcessingError, normalize_image
from fabricai.client.state import OUTPUT_GROUNDED, OUTPUT_ISOLATED, GenerationState
from fabricai.prompts import build_description

log = logging.getLogger(__name__)

GENERATION_TIMEOUT = 120.0
TIMEOUT_MESSAGE = "The generation took too long. Please try again with a smaller image."
SIGN_IN_MESSAGE = "Sign in to generate images."
QUOTA_MESSAGE = "You have used all the generations included in your plan."


class GenerationController:
    """
    Drives one generation at a time: photo upload, fabric/color/mode choice,
    the gateway call and saving the result to the gallery.
    """

    def __init__(self, api: ApiClient, state: Optional[GenerationState] = None,
                 timeout: float = GENERATION_TIMEOUT):
        self.api = api
        self.state = state or GenerationState()
        self.timeout = timeout

    # --- inputs ----------------------------------------------------------

    def _load(self, data: bytes, attr: str) -> bool:
        self.state.error = None
        try:
            image = normalize_image(data)
        except ImageProcessingError as e:
            log.warning(f"Rejected upload: {e}")
            self.state.error = str(e)
            return False
        setattr(self.state, attr, image.base64)
        self.state.result_image = None
        return True

    def load_primary_image(self, data: bytes) -> bool:
        return self._load(data, "primary_image")

    def load_fabric_sample(self, data: bytes) -> bool:
        return self._load(data, "fabric_sample")

    def clear_fabric_sample(self) -> None:
        self.state.fabric_sample = None

    def select_options(
        self,
        fabric_name: Optional[str] = None,
        color_name: Optional[str] = None,
        texture_prompt: Optional[str] = None,
        output_mode: Optional[str] = None,
    ) -> None:
        if fabric_name is not None:
            self.state.fabric_name = fabric_name
            self.state.texture_prompt = texture_prompt
        if color_name is not None:
            self.state.color_name = color_name
        if output_mode is not None:
            if output_mode not in (OUTPUT_GROUNDED, OUTPUT_ISOLATED):
                raise ValueError(f"Unknown output mode: {output_mode}")
            self.state.output_mode = output_mode

    def build_request(self) -> Dict[str, Any]:
        """
        Body for /gemini/edit. With a fabric sample loaded the dual-image
        shape is sent; otherwise the chosen fabric and color become the prompt.
        """
        s = self.state
        if s.fabric_sample:
            return {
                "sofaImageBase64": s.primary_image,
                "fabricImageBase64": s.fabric_sample,
                "outputMode": s.output_mode,
            }
        return {
            "imageBase64": s.primary_image,
            "prompt": build_description(s.fabric_name or "", s.color_name, s.texture_prompt),
            "outputMode": s.output_mode,
        }

    # --- generation ------------------------------------------------------

    def _check_quota(self) -> None:
        profile = self.api.profile or self.api.refresh_profile()
        remaining = profile.get("remaining_generations", -1)
        if remaining == 0:
            raise QuotaExceeded(QUOTA_MESSAGE)

    def generate(self) -> Optional[str]:
        """
        Returns the edited image as raw base64, or None with `state.error` set.
        Raises QuotaExceeded and GenerationTimeout after recording them in state.
        """
        s = self.state
        if not self.api.signed_in:
            s.error = SIGN_IN_MESSAGE
            return None
        if not s.primary_image:
            s.error = "Upload a photo of the sofa first."
            return None
        if not s.fabric_sample and not s.fabric_name:
            s.error = "Choose a fabric or upload a fabric sample."
            return None

        s.error = None
        s.timed_out = False
        try:
            self._check_quota()
        except QuotaExceeded as e:
            s.error = str(e)
            raise
        except StoreError as e:
            s.error = e.message
            return None

        s.busy = True
        try:
            data = self.api.request("POST", "/gemini/edit", json=self.build_request(), timeout=self.timeout)
        except RequestTimeout:
            log.error(f"Generation timed out after {self.timeout:g}s")
            s.timed_out = True
            s.error = TIMEOUT_MESSAGE
            raise GenerationTimeout(TIMEOUT_MESSAGE)
        except StoreError as e:
            s.error = e.message
            return None
        finally:
            s.busy = False

        s.result_image = data.get("image")
        try:
            self.api.refresh_profile()
        except StoreError as e:
            log.warning(f"Could not refresh the profile after a generation: {e.message}")
        return s.result_image

    def save_result(
        self,
        gallery: GalleryController,
        name: str,
        folder_id: Optional[str] = None,
        new_folder_name: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        if not self.state.result_image:
            self.state.error = "There is no generated image to save."
            return None
        saved = gallery.save_generated_image(
            self.state.result_image, name, folder_id=folder_id, new_folder_name=new_folder_name,
        )
        if saved is None:
            self.state.error = gallery.state.error
        return saved

    def reset(self) -> None:
        output_mode = self.state.output_mode
        self.state.__init__()
        self.state.output_mode = output_mode
