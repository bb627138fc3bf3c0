# gallery.py
import logging
from typing import Any, Callable, Dict, Optional

from fabricai.client.api import ApiClient, StoreError
from fabricai.client.state import ALL_FOLDERS, GalleryState

log = logging.getLogger(__name__)


class GalleryController:
    """Folders and saved images, plus the virtual "all images" folder."""

    def __init__(self, api: ApiClient, state: Optional[GalleryState] = None,
                 confirm: Optional[Callable[[str], bool]] = None):
        self.api = api
        self.state = state or GalleryState()
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

    def _fetch_folders(self) -> None:
        self.state.folders = self.api.request("GET", "/folders")["folders"]

    def _fetch_images(self) -> None:
        data = self.api.request("GET", "/images", params={"folder_id": self.state.selected_folder})
        self.state.images = data["images"]
        # Unfiltered count, whatever folder is being browsed.
        self.state.total_count = data["total"]

    def _refresh(self) -> None:
        self._fetch_folders()
        self._fetch_images()

    def _reload_folders_after_failure(self) -> None:
        try:
            self._fetch_folders()
        except StoreError as e:
            log.warning(f"Could not reload folders: {e.message}")

    def load(self) -> bool:
        return self._run("Loading gallery", self._refresh)

    def select_folder(self, folder_id: str) -> bool:
        self.state.selected_folder = folder_id or ALL_FOLDERS
        return self._run("Loading images", self._fetch_images)

    def create_folder(self, name: str) -> Optional[Dict[str, Any]]:
        name = (name or "").strip()
        if not name:
            return None

        created = {}

        def action():
            created.update(self.api.request("POST", "/folders", json={"name": name})["folder"])
            self._fetch_folders()

        return created if self._run("Creating folder", action) else None

    def rename_folder(self, folder_id: str, new_name: str) -> bool:
        def action():
            self.api.request("PUT", f"/folders/{folder_id}", json={"name": new_name})
            self._fetch_folders()

        return self._run("Renaming folder", action)

    def delete_folder(self, folder_id: str) -> bool:
        """Deletes the folder together with every image inside it."""
        if folder_id == ALL_FOLDERS:
            return False
        folder = next((f for f in self.state.folders if f["id"] == folder_id), None)
        name = folder["name"] if folder else folder_id
        if not self.confirm(f'Eliminare la cartella "{name}" e tutte le sue immagini?'):
            return False

        def action():
            self.api.request("DELETE", f"/folders/{folder_id}")
            if self.state.selected_folder == folder_id:
                self.state.selected_folder = ALL_FOLDERS
            self._refresh()

        return self._run("Deleting folder", action)

    def delete_image(self, image_id: str) -> bool:
        if not self.confirm("Eliminare questa immagine?"):
            return False

        def action():
            self.api.request("DELETE", f"/images/{image_id}")
            self._refresh()

        return self._run("Deleting image", action)

    def save_generated_image(
        self,
        image_base64: str,
        name: str,
        folder_id: Optional[str] = None,
        new_folder_name: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Saves a generation. A new folder name is created first and its id used
        for the image; the two writes are sequential, so a failed image insert
        can leave the new folder behind, empty.
        """
        saved = {}

        def action():
            target = folder_id if folder_id != ALL_FOLDERS else None
            folder_created = False
            if new_folder_name and new_folder_name.strip():
                folder = self.api.request("POST", "/folders", json={"name": new_folder_name.strip()})["folder"]
                target = folder["id"]
                folder_created = True
            try:
                saved.update(self.api.request(
                    "POST", "/images",
                    json={"name": name, "image_base64": image_base64, "folder_id": target},
                )["image"])
            except StoreError:
                if folder_created:
                    self._reload_folders_after_failure()
                raise
            self._refresh()

        return saved if self._run("Saving image", action) else None
