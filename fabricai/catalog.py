# catalog.py
"""
Fabric and color catalog.

Admin endpoints manage the two-level catalog (fabric -> colors). The public
`/catalog` view shows only active fabrics and merges in the built-in seed
data: stored rows always win by name, defaults only fill the gaps.
"""

import logging
import re
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from fabricai.auth import require_admin
from fabricai.db import get_db
from fabricai.errors import InvalidRequest, NotFound, ServiceError
from fabricai.models import Color, Fabric, Profile
from fabricai.settings import Settings, get_settings
from fabricai.storage import LocalObjectStorage, get_storage, read_image_upload

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Catalog"])

HEX_PATTERN = re.compile(r"^#?([0-9a-fA-F]{6})$")


# ===================================================================
# Pydantic Schemas
# ===================================================================

class FabricOut(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    preview_image_url: Optional[str] = None
    texture_prompt: Optional[str] = None
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True

class ColorOut(BaseModel):
    id: uuid.UUID
    fabric_id: uuid.UUID
    name: str
    hex_value: str
    preview_image_url: str
    created_at: datetime

    class Config:
        from_attributes = True

class ActiveToggle(BaseModel):
    is_active: bool

class CatalogColor(BaseModel):
    id: Optional[uuid.UUID] = None
    name: str
    hex_value: str
    preview_image_url: Optional[str] = None
    source: str = "store"

class CatalogFabric(BaseModel):
    id: Optional[uuid.UUID] = None
    name: str
    description: Optional[str] = None
    preview_image_url: Optional[str] = None
    texture_prompt: Optional[str] = None
    is_active: bool = True
    source: str = "store"
    colors: List[CatalogColor] = []


# ===================================================================
# Seed Data
# ===================================================================
# Served when the store lacks a fabric (or a fabric lacks colors).

DEFAULT_FABRICS: List[CatalogFabric] = [
    CatalogFabric(name="Velvet", description="Luxurious velvet", source="default"),
    CatalogFabric(name="Leather", description="Genuine leather", source="default"),
    CatalogFabric(name="Linen", description="Natural linen", source="default"),
    CatalogFabric(name="Microfiber", description="Soft microfiber", source="default"),
    CatalogFabric(name="Cotton", description="High-quality cotton", source="default"),
    CatalogFabric(name="Bouclé", description="Textured bouclé", source="default"),
]

DEFAULT_COLORS: List[CatalogColor] = [
    CatalogColor(name="Blu Navy", hex_value="#1F2A44", source="default"),
    CatalogColor(name="Grigio Antracite", hex_value="#3B3F45", source="default"),
    CatalogColor(name="Beige Sabbia", hex_value="#D8C3A5", source="default"),
    CatalogColor(name="Verde Salvia", hex_value="#9CAF88", source="default"),
    CatalogColor(name="Terracotta", hex_value="#C46A4A", source="default"),
    CatalogColor(name="Bianco Panna", hex_value="#F3EEE2", source="default"),
]


def merge_by_name(stored: list, defaults: list) -> list:
    """Stored entries first; a default is kept only if no stored entry shares its name."""
    taken = {item.name.strip().lower() for item in stored}
    return list(stored) + [d.model_copy(deep=True) for d in defaults if d.name.strip().lower() not in taken]


def build_public_catalog(fabrics: List[Fabric], colors: List[Color], seed_defaults: bool = True) -> List[CatalogFabric]:
    """
    End-user catalog: seed-and-merge, then keep active fabrics only.
    Inactive stored fabrics still suppress a same-named default.
    """
    colors_by_fabric = {}
    for color in colors:
        colors_by_fabric.setdefault(color.fabric_id, []).append(
            CatalogColor(id=color.id, name=color.name, hex_value=color.hex_value,
                         preview_image_url=color.preview_image_url)
        )

    stored = [
        CatalogFabric(
            id=f.id, name=f.name, description=f.description, preview_image_url=f.preview_image_url,
            texture_prompt=f.texture_prompt, is_active=bool(f.is_active),
            colors=colors_by_fabric.get(f.id, []),
        )
        for f in fabrics
    ]
    merged = merge_by_name(stored, DEFAULT_FABRICS) if seed_defaults else stored

    visible = [f for f in merged if f.is_active]
    if seed_defaults:
        for fabric in visible:
            if not fabric.colors:
                fabric.colors = [c.model_copy() for c in DEFAULT_COLORS]
    return visible


def normalize_hex(value: str) -> str:
    match = HEX_PATTERN.match((value or "").strip())
    if not match:
        raise InvalidRequest("Color hex value must look like #RRGGBB.")
    return f"#{match.group(1).upper()}"


async def _get_fabric(db: AsyncSession, fabric_id: uuid.UUID) -> Fabric:
    fabric = await db.get(Fabric, fabric_id)
    if fabric is None:
        raise NotFound("Fabric not found.")
    return fabric


async def _commit(db: AsyncSession, what: str) -> None:
    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception(f"Database error while saving {what}.")
        raise ServiceError(str(e))


# ===================================================================
# Public Endpoint
# ===================================================================

@router.get("/catalog", summary="Active fabrics and colors for the visualizer")
async def get_catalog(db: AsyncSession = Depends(get_db), config: Settings = Depends(get_settings)):
    fabrics = (await db.execute(select(Fabric).order_by(Fabric.created_at.desc()))).scalars().all()
    colors = (await db.execute(select(Color).order_by(Color.created_at.asc()))).scalars().all()
    catalog = build_public_catalog(fabrics, colors, seed_defaults=config.CATALOG_SEED_DEFAULTS)
    return {"success": True, "fabrics": [f.model_dump(mode="json") for f in catalog]}


# ===================================================================
# Admin Endpoints: Fabrics
# ===================================================================

@router.get("/fabrics", summary="List every fabric, newest first")
async def list_fabrics(db: AsyncSession = Depends(get_db), admin: Profile = Depends(require_admin)):
    result = await db.execute(select(Fabric).order_by(Fabric.created_at.desc()))
    fabrics = result.scalars().all()
    return {"success": True, "fabrics": [FabricOut.model_validate(f).model_dump(mode="json") for f in fabrics]}


@router.post("/fabrics", status_code=status.HTTP_201_CREATED, summary="Create a fabric")
async def create_fabric(
    name: str = Form(...),
    description: Optional[str] = Form(None),
    texture_prompt: Optional[str] = Form(None),
    is_active: bool = Form(True),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    admin: Profile = Depends(require_admin),
):
    if not name.strip():
        raise InvalidRequest("Fabric name is required.")

    fabric = Fabric(name=name.strip(), description=description, texture_prompt=texture_prompt, is_active=is_active)
    key = None
    if image is not None and image.filename:
        contents, content_type = await read_image_upload(image)
        key = storage.put("fabrics", contents, content_type)
        fabric.preview_storage_key = key
        fabric.preview_image_url = storage.url_for(key)

    db.add(fabric)
    try:
        await _commit(db, "a new fabric")
    except ServiceError:
        storage.delete(key)
        raise
    logger.info(f"Fabric '{fabric.name}' created by {admin.email}")
    return {"success": True, "fabric": FabricOut.model_validate(fabric).model_dump(mode="json")}


@router.put("/fabrics/{fabric_id}", summary="Update a fabric")
async def update_fabric(
    fabric_id: uuid.UUID,
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    texture_prompt: Optional[str] = Form(None),
    is_active: Optional[bool] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    admin: Profile = Depends(require_admin),
):
    """Fields left out keep their value; without a new image the old preview URL is kept."""
    fabric = await _get_fabric(db, fabric_id)
    if name is not None and not name.strip():
        raise InvalidRequest("Fabric name is required.")

    old_key = new_key = None
    if image is not None and image.filename:
        contents, content_type = await read_image_upload(image)
        old_key = fabric.preview_storage_key
        new_key = storage.put("fabrics", contents, content_type)
        fabric.preview_storage_key = new_key
        fabric.preview_image_url = storage.url_for(new_key)

    if name is not None:
        fabric.name = name.strip()
    if description is not None:
        fabric.description = description
    if texture_prompt is not None:
        fabric.texture_prompt = texture_prompt
    if is_active is not None:
        fabric.is_active = is_active

    try:
        await _commit(db, f"fabric {fabric_id}")
    except ServiceError:
        storage.delete(new_key)
        raise
    # The old preview goes only once the row points at the new one.
    storage.delete(old_key)
    return {"success": True, "fabric": FabricOut.model_validate(fabric).model_dump(mode="json")}


@router.patch("/fabrics/{fabric_id}/active", summary="Show or hide a fabric in the public catalog")
async def toggle_fabric_active(
    fabric_id: uuid.UUID,
    payload: ActiveToggle,
    db: AsyncSession = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    fabric = await _get_fabric(db, fabric_id)
    fabric.is_active = payload.is_active
    await _commit(db, f"fabric {fabric_id}")
    return {"success": True, "fabric": FabricOut.model_validate(fabric).model_dump(mode="json")}


@router.delete("/fabrics/{fabric_id}", summary="Delete a fabric and all of its colors")
async def delete_fabric(
    fabric_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    admin: Profile = Depends(require_admin),
):
    fabric = await _get_fabric(db, fabric_id)
    colors = (await db.execute(select(Color).where(Color.fabric_id == fabric_id))).scalars().all()
    keys = [fabric.preview_storage_key] + [c.preview_storage_key for c in colors]

    for color in colors:
        await db.delete(color)
    await db.delete(fabric)
    await _commit(db, f"deletion of fabric {fabric_id}")

    for key in keys:
        storage.delete(key)
    logger.info(f"Fabric {fabric_id} and {len(colors)} color(s) deleted by {admin.email}")
    return {"success": True}


# ===================================================================
# Admin Endpoints: Colors
# ===================================================================

@router.get("/fabrics/{fabric_id}/colors", summary="List the colors of a fabric")
async def list_colors(
    fabric_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    admin: Profile = Depends(require_admin),
):
    await _get_fabric(db, fabric_id)
    result = await db.execute(
        select(Color).where(Color.fabric_id == fabric_id).order_by(Color.created_at.asc())
    )
    return {"success": True, "colors": [ColorOut.model_validate(c).model_dump(mode="json") for c in result.scalars().all()]}


@router.post("/fabrics/{fabric_id}/colors", status_code=status.HTTP_201_CREATED, summary="Add a color to a fabric")
async def create_color(
    fabric_id: uuid.UUID,
    name: str = Form(...),
    hex_value: str = Form(...),
    image: Optional[UploadFile] = File(None),
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    admin: Profile = Depends(require_admin),
):
    """The preview image is mandatory; an upload failure leaves the store untouched."""
    await _get_fabric(db, fabric_id)
    if not name.strip():
        raise InvalidRequest("Color name is required.")
    hex_value = normalize_hex(hex_value)
    if image is None or not image.filename:
        raise InvalidRequest("A preview image is required for a color.")

    contents, content_type = await read_image_upload(image)
    key = storage.put(f"colors/{fabric_id}", contents, content_type)

    color = Color(
        fabric_id=fabric_id,
        name=name.strip(),
        hex_value=hex_value,
        preview_storage_key=key,
        preview_image_url=storage.url_for(key),
    )
    db.add(color)
    try:
        await _commit(db, "a new color")
    except ServiceError:
        storage.delete(key)
        raise
    return {"success": True, "color": ColorOut.model_validate(color).model_dump(mode="json")}


@router.delete("/colors/{color_id}", summary="Delete a color")
async def delete_color(
    color_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    admin: Profile = Depends(require_admin),
):
    color = await db.get(Color, color_id)
    if color is None:
        raise NotFound("Color not found.")

    key = color.preview_storage_key
    await db.delete(color)
    await _commit(db, f"deletion of color {color_id}")
    storage.delete(key)
    return {"success": True}
