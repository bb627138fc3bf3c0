# catalog.py
"""
Fabric/color master-detail editor.

Picking a fabric enters FabricSelected and reloads its colors; nothing
returns to NoFabricSelected except deleting the selected fabric. Every
mutation is followed by an explicit reload, and nothing is retried.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from fabricai.client.api import ApiClient, StoreError
from fabricai.client.state import CatalogState

log = logging.getLogger(__name__)

Confirm = Callable[[str], bool]


def _image_files(image: Optional[bytes], content_type: str, filename: str) -> Optional[Dict[str, Any]]:
    if image is None:
        return None
    return {"image": (filename, image, content_type)}


def _form(fields: Dict[str, Any]) -> Dict[str, str]:
    data = {}
    for key, value in fields.items():
        if value is None:
            continue
        data[key] = ("true" if value else "false") if isinstance(value, bool) else str(value)
    return data


class CatalogController:
    def __init__(self, api: ApiClient, state: Optional[CatalogState] = None, confirm: Optional[Confirm] = None):
        self.api = api
        self.state = state or CatalogState()
        self.confirm = confirm or (lambda message: True)

    def _run(self, action: str, fn: Callable[[], Any]) -> bool:
        self.state.busy = True
        self.state.error = None
        try:
            fn()
            return True
        except StoreError as e:
            log.error(f"{action} failed: {e.message}")
            self.state.error = e.message
            return False
        finally:
            self.state.busy = False

    # --- reads -----------------------------------------------------------

    def _fetch_fabrics(self) -> None:
        self.state.fabrics = self.api.request("GET", "/fabrics")["fabrics"]

    def _fetch_colors(self) -> None:
        if self.state.selected_fabric_id is None:
            self.state.colors = []
            return
        self.state.colors = self.list_colors(self.state.selected_fabric_id)

    def list_colors(self, fabric_id: str) -> List[Dict[str, Any]]:
        return self.api.request("GET", f"/fabrics/{fabric_id}/colors")["colors"]

    def load_fabrics(self) -> bool:
        """Admin view: every fabric, newest first, inactive ones included."""
        return self._run("Loading fabrics", self._fetch_fabrics)

    def select_fabric(self, fabric_id: str) -> bool:
        self.state.selected_fabric_id = fabric_id
        self.state.colors = []
        return self._run("Loading colors", self._fetch_colors)

    def is_dimmed(self, fabric: Dict[str, Any]) -> bool:
        return not fabric.get("is_active", True)

    # --- fabrics ---------------------------------------------------------

    def create_fabric(
        self,
        name: str,
        description: Optional[str] = None,
        texture_prompt: Optional[str] = None,
        is_active: bool = True,
        image: Optional[bytes] = None,
        content_type: str = "image/jpeg",
    ) -> bool:
        def action():
            self.api.request(
                "POST", "/fabrics",
                data=_form({"name": name, "description": description,
                            "texture_prompt": texture_prompt, "is_active": is_active}),
                files=_image_files(image, content_type, "fabric.jpg"),
            )
            self._fetch_fabrics()

        return self._run("Creating fabric", action)

    def update_fabric(
        self,
        fabric_id: str,
        image: Optional[bytes] = None,
        content_type: str = "image/jpeg",
        **fields,
    ) -> bool:
        """Without a new image the stored preview URL is kept."""
        def action():
            self.api.request(
                "PUT", f"/fabrics/{fabric_id}",
                data=_form(fields),
                files=_image_files(image, content_type, "fabric.jpg"),
            )
            self._fetch_fabrics()

        return self._run("Updating fabric", action)

    def toggle_fabric_active(self, fabric_id: str, value: bool) -> bool:
        """Optimistic: flips the cached row first, reloads from the store on failure."""
        fabric = self.state.find_fabric(fabric_id)
        previous = fabric.get("is_active") if fabric else None
        if fabric is not None:
            fabric["is_active"] = value

        self.state.busy = True
        self.state.error = None
        try:
            self.api.request("PATCH", f"/fabrics/{fabric_id}/active", json={"is_active": value})
            return True
        except StoreError as e:
            log.error(f"Toggling fabric {fabric_id} failed: {e.message}")
            self.state.error = e.message
            try:
                self._fetch_fabrics()
            except StoreError:
                if fabric is not None:
                    fabric["is_active"] = previous
            return False
        finally:
            self.state.busy = False

    def delete_fabric(self, fabric_id: str) -> bool:
        fabric = self.state.find_fabric(fabric_id)
        name = fabric["name"] if fabric else fabric_id
        if not self.confirm(f'Eliminare il tessuto "{name}" e tutti i suoi colori?'):
            return False

        def action():
            self.api.request("DELETE", f"/fabrics/{fabric_id}")
            if self.state.selected_fabric_id == fabric_id:
                self.state.selected_fabric_id = None
            self._fetch_fabrics()
            self._fetch_colors()

        return self._run("Deleting fabric", action)

    # --- colors ----------------------------------------------------------

    def create_color(
        self,
        fabric_id: str,
        name: str,
        hex_value: str,
        image: Optional[bytes],
        content_type: str = "image/jpeg",
    ) -> bool:
        """A preview image is mandatory; a failed upload leaves no color behind."""
        if not image:
            self.state.error = "A preview image is required for a color."
            return False

        def action():
            self.api.request(
                "POST", f"/fabrics/{fabric_id}/colors",
                data={"name": name, "hex_value": hex_value},
                files=_image_files(image, content_type, "color.jpg"),
            )
            self._fetch_colors()

        return self._run("Creating color", action)

    def delete_color(self, color_id: str) -> bool:
        color = next((c for c in self.state.colors if c["id"] == color_id), None)
        name = color["name"] if color else color_id
        if not self.confirm(f'Eliminare il colore "{name}"?'):
            return False

        def action():
            self.api.request("DELETE", f"/colors/{color_id}")
            self._fetch_colors()

        return self._run("Deleting color", action)
