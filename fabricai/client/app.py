# app.py
import logging
from typing import Any, Callable, Dict, Optional

import httpx

from fabricai.client.api import ApiClient
from fabricai.client.catalog import CatalogController
from fabricai.client.dispatcher import Dispatcher
from fabricai.client.gallery import GalleryController
from fabricai.client.generation import GenerationController
from fabricai.client.state import AppState

log = logging.getLogger(__name__)


class Application:
    """
    Owns the state and the controllers, and exposes every UI action as a
    named command on `dispatcher`.
    """

    def __init__(
        self,
        http: Optional[httpx.Client] = None,
        base_url: str = "http://localhost:3001",
        confirm: Optional[Callable[[str], bool]] = None,
    ):
        self.http = http or httpx.Client(base_url=base_url)
        self.api = ApiClient(self.http)
        self.state = AppState()

        self.catalog = CatalogController(self.api, self.state.catalog, confirm=confirm)
        self.gallery = GalleryController(self.api, self.state.gallery, confirm=confirm)
        self.generation = GenerationController(self.api, self.state.generation)

        self.dispatcher = Dispatcher()
        self._register_commands()

    def _register_commands(self) -> None:
        commands: Dict[str, Callable[..., Any]] = {
            "session.sign_in": self.sign_in,
            "session.sign_out": self.sign_out,

            "catalog.public": self.public_catalog,
            "catalog.load": self.catalog.load_fabrics,
            "catalog.select_fabric": self.catalog.select_fabric,
            "catalog.create_fabric": self.catalog.create_fabric,
            "catalog.update_fabric": self.catalog.update_fabric,
            "catalog.toggle_active": self.catalog.toggle_fabric_active,
            "catalog.delete_fabric": self.catalog.delete_fabric,
            "catalog.create_color": self.catalog.create_color,
            "catalog.delete_color": self.catalog.delete_color,

            "gallery.load": self.gallery.load,
            "gallery.select_folder": self.gallery.select_folder,
            "gallery.create_folder": self.gallery.create_folder,
            "gallery.rename_folder": self.gallery.rename_folder,
            "gallery.delete_folder": self.gallery.delete_folder,
            "gallery.delete_image": self.gallery.delete_image,

            "generation.load_photo": self.generation.load_primary_image,
            "generation.load_fabric_sample": self.generation.load_fabric_sample,
            "generation.clear_fabric_sample": self.generation.clear_fabric_sample,
            "generation.select": self.generation.select_options,
            "generation.run": self.generation.generate,
            "generation.save": self.save_result,
            "generation.reset": self.generation.reset,
        }
        for name, handler in commands.items():
            self.dispatcher.register(name, handler)

    # --- session ---------------------------------------------------------

    def sign_in(self, email: str, password: str) -> Dict[str, Any]:
        profile = self.api.sign_in(email, password)
        log.info(f"Signed in as {profile['email']} ({profile['role']})")
        return profile

    def sign_out(self) -> None:
        self.api.sign_out()
        # Controllers hold references to the sub-states, so reset them in place.
        self.state.catalog.__init__()
        self.state.gallery.__init__()
        self.state.generation.__init__()

    @property
    def show_admin_tools(self) -> bool:
        """Display filter only; the server enforces the admin role on every call."""
        return bool(self.api.profile and self.api.profile.get("role") == "admin")

    # --- composite actions -----------------------------------------------

    def public_catalog(self):
        return self.api.request("GET", "/catalog")["fabrics"]

    def save_result(self, name: str, folder_id: Optional[str] = None, new_folder_name: Optional[str] = None):
        return self.generation.save_result(self.gallery, name, folder_id=folder_id, new_folder_name=new_folder_name)

    def close(self) -> None:
        self.http.close()
