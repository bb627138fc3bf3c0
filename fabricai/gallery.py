# gallery.py
"""
Gallery of saved generations, organized in folders.

`folder_id=all` is a virtual folder that matches every image. The image
listing always carries `total`, an unfiltered count from a separate query,
so the overall figure is independent of the folder being browsed.
"""

import base64
import binascii
import logging
import uuid
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from fabricai.auth import get_current_user
from fabricai.db import get_db
from fabricai.errors import Forbidden, InvalidRequest, NotFound, ServiceError
from fabricai.models import Folder, Profile, SavedImage
from fabricai.storage import LocalObjectStorage, get_storage

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Gallery"])

ALL_FOLDERS = "all"


# ===================================================================
# Pydantic Schemas
# ===================================================================

class FolderIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)

class FolderOut(BaseModel):
    id: uuid.UUID
    name: str
    created_by: Optional[str] = None
    created_at: datetime
    image_count: int = 0

class SavedImageIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    image_base64: str
    folder_id: Optional[uuid.UUID] = None
    content_type: str = "image/jpeg"

class SavedImageOut(BaseModel):
    id: uuid.UUID
    folder_id: Optional[uuid.UUID] = None
    name: str
    image_url: str
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


def decode_image_payload(data: str) -> bytes:
    """Accepts raw base64 or a `data:` URI and returns the bytes."""
    if data.startswith("data:"):
        data = data.split(",", 1)[-1]
    try:
        decoded = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidRequest("image_base64 is not valid base64.")
    if not decoded:
        raise InvalidRequest("image_base64 is empty.")
    return decoded


async def _get_folder(db: AsyncSession, folder_id: uuid.UUID) -> Folder:
    folder = await db.get(Folder, folder_id)
    if folder is None:
        raise NotFound("Folder not found.")
    return folder


def _ensure_owner(row, user: Profile, what: str) -> None:
    """Only the account that created a folder or image, or an admin, may change it."""
    if user.is_admin or row.created_by == user.email:
        return
    logger.warning(f"{user.email} tried to modify {what} {row.id} owned by {row.created_by}")
    raise Forbidden(f"You can only modify {what}s you created.")


async def _commit(db: AsyncSession, what: str) -> None:
    try:
        await db.commit()
    except Exception as e:
        await db.rollback()
        logger.exception(f"Database error while saving {what}.")
        raise ServiceError(str(e))


# ===================================================================
# Folders
# ===================================================================

@router.get("/folders", summary="List folders with their image counts")
async def list_folders(db: AsyncSession = Depends(get_db), current_user: Profile = Depends(get_current_user)):
    counts = (
        select(SavedImage.folder_id, func.count(SavedImage.id).label("image_count"))
        .group_by(SavedImage.folder_id)
        .subquery()
    )
    query = (
        select(Folder, func.coalesce(counts.c.image_count, 0))
        .outerjoin(counts, counts.c.folder_id == Folder.id)
        .order_by(Folder.name)
    )
    rows = (await db.execute(query)).all()
    folders: List[dict] = [
        FolderOut(
            id=folder.id, name=folder.name, created_by=folder.created_by,
            created_at=folder.created_at, image_count=count,
        ).model_dump(mode="json")
        for folder, count in rows
    ]
    return {"success": True, "folders": folders}


@router.post("/folders", status_code=status.HTTP_201_CREATED, summary="Create a folder")
async def create_folder(
    payload: FolderIn,
    db: AsyncSession = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    name = payload.name.strip()
    if not name:
        raise InvalidRequest("Folder name is required.")

    folder = Folder(name=name, created_by=current_user.email)
    db.add(folder)
    await _commit(db, "a new folder")
    return {"success": True, "folder": FolderOut(
        id=folder.id, name=folder.name, created_by=folder.created_by, created_at=folder.created_at,
    ).model_dump(mode="json")}


@router.put("/folders/{folder_id}", summary="Rename a folder")
async def rename_folder(
    folder_id: uuid.UUID,
    payload: FolderIn,
    db: AsyncSession = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    name = payload.name.strip()
    if not name:
        raise InvalidRequest("Folder name is required.")

    folder = await _get_folder(db, folder_id)
    _ensure_owner(folder, current_user, "folder")
    folder.name = name
    await _commit(db, f"folder {folder_id}")
    return {"success": True, "folder": FolderOut(
        id=folder.id, name=folder.name, created_by=folder.created_by, created_at=folder.created_at,
    ).model_dump(mode="json")}


@router.delete("/folders/{folder_id}", summary="Delete a folder and every image inside it")
async def delete_folder(
    folder_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    current_user: Profile = Depends(get_current_user),
):
    folder = await _get_folder(db, folder_id)
    _ensure_owner(folder, current_user, "folder")
    keys = (await db.execute(
        select(SavedImage.storage_key).where(SavedImage.folder_id == folder_id)
    )).scalars().all()

    await db.execute(delete(SavedImage).where(SavedImage.folder_id == folder_id))
    await db.delete(folder)
    await _commit(db, f"deletion of folder {folder_id}")

    for key in keys:
        storage.delete(key)
    logger.info(f"Folder {folder_id} deleted with {len(keys)} image(s) by {current_user.email}")
    return {"success": True, "deleted_images": len(keys)}


# ===================================================================
# Images
# ===================================================================

@router.get("/images", summary="List saved images, optionally scoped to a folder")
async def list_images(
    folder_id: str = Query(ALL_FOLDERS),
    db: AsyncSession = Depends(get_db),
    current_user: Profile = Depends(get_current_user),
):
    query = select(SavedImage).order_by(SavedImage.created_at.desc())
    if folder_id != ALL_FOLDERS:
        try:
            query = query.where(SavedImage.folder_id == uuid.UUID(folder_id))
        except ValueError:
            raise InvalidRequest("folder_id must be 'all' or a folder id.")

    images = (await db.execute(query)).scalars().all()
    total = (await db.execute(select(func.count()).select_from(SavedImage))).scalar_one()
    return {
        "success": True,
        "images": [SavedImageOut.model_validate(i).model_dump(mode="json") for i in images],
        "total": total,
    }


@router.post("/images", status_code=status.HTTP_201_CREATED, summary="Save a generated image")
async def save_image(
    payload: SavedImageIn,
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    current_user: Profile = Depends(get_current_user),
):
    if payload.folder_id is not None:
        await _get_folder(db, payload.folder_id)

    key = storage.put("generations", decode_image_payload(payload.image_base64), payload.content_type)
    image = SavedImage(
        folder_id=payload.folder_id,
        name=payload.name.strip(),
        image_url=storage.url_for(key),
        storage_key=key,
        created_by=current_user.email,
    )
    db.add(image)
    try:
        await _commit(db, "a saved image")
    except ServiceError:
        storage.delete(key)
        raise
    return {"success": True, "image": SavedImageOut.model_validate(image).model_dump(mode="json")}


@router.delete("/images/{image_id}", summary="Delete a saved image")
async def delete_image(
    image_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    storage: LocalObjectStorage = Depends(get_storage),
    current_user: Profile = Depends(get_current_user),
):
    image = await db.get(SavedImage, image_id)
    if image is None:
        raise NotFound("Image not found.")
    _ensure_owner(image, current_user, "image")

    key = image.storage_key
    await db.delete(image)
    await _commit(db, f"deletion of image {image_id}")
    storage.delete(key)
    return {"success": True}
