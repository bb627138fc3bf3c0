# state.py
"""Application state owned by the controllers. Lists are caches of the store."""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

ALL_FOLDERS = "all"

NO_FABRIC_SELECTED = "NoFabricSelected"
FABRIC_SELECTED = "FabricSelected"

OUTPUT_GROUNDED = "ambientato"
OUTPUT_ISOLATED = "scontornato"


@dataclass
class CatalogState:
    fabrics: List[Dict[str, Any]] = field(default_factory=list)
    colors: List[Dict[str, Any]] = field(default_factory=list)
    selected_fabric_id: Optional[str] = None
    busy: bool = False
    error: Optional[str] = None

    @property
    def phase(self) -> str:
        return FABRIC_SELECTED if self.selected_fabric_id else NO_FABRIC_SELECTED

    def find_fabric(self, fabric_id: str) -> Optional[Dict[str, Any]]:
        return next((f for f in self.fabrics if f["id"] == fabric_id), None)


@dataclass
class GalleryState:
    folders: List[Dict[str, Any]] = field(default_factory=list)
    images: List[Dict[str, Any]] = field(default_factory=list)
    selected_folder: str = ALL_FOLDERS
    total_count: int = 0
    busy: bool = False
    error: Optional[str] = None

    @property
    def current_folder_name(self) -> str:
        if self.selected_folder == ALL_FOLDERS:
            return "Tutte le immagini"
        folder = next((f for f in self.folders if f["id"] == self.selected_folder), None)
        return folder["name"] if folder else "Cartella"


@dataclass
class GenerationState:
    primary_image: Optional[str] = None      # raw base64 JPEG
    fabric_sample: Optional[str] = None      # raw base64 JPEG, enables the dual-image request
    fabric_name: Optional[str] = None
    color_name: Optional[str] = None
    texture_prompt: Optional[str] = None
    output_mode: str = OUTPUT_GROUNDED
    result_image: Optional[str] = None
    busy: bool = False
    timed_out: bool = False
    error: Optional[str] = None


@dataclass
class AppState:
    catalog: CatalogState = field(default_factory=CatalogState)
    gallery: GalleryState = field(default_factory=GalleryState)
    generation: GenerationState = field(default_factory=GenerationState)
