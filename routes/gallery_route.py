"""FastAPI routes for browsing, uploading and managing gallery images."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from controllers.gallery_controller import (
	clear_cache,
	describe_id,
	download_images,
	edit_image,
	get_images,
	remove_image,
	sync_images,
	upload_image,
	upload_images,
)
from services.gallery_query import GalleryQuery
from services.zip_builder import DownloadItem
from utils.auth import require_admin

router = APIRouter(prefix="/api")


class UpdatePayload(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	image_id: int = Field(alias="imageId")
	day: Optional[int] = None
	title: Optional[str] = None
	category: Optional[str] = None
	tags: Optional[List[str]] = None
	is_highlight: Optional[bool] = Field(default=None, alias="isHighlight")


class DeletePayload(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	image_id: int = Field(alias="imageId")


class DownloadImage(BaseModel):
	model_config = ConfigDict(populate_by_name=True)

	id: int
	title: str = ""
	full_url: str = Field(default="", alias="fullUrl")
	day: Optional[int] = None


class DownloadPayload(BaseModel):
	images: List[DownloadImage] = []


def _server_error(action: str, exc: Exception) -> HTTPException:
	logging.error("%s failed: %s", action, exc)
	return HTTPException(status_code=500, detail=f"{action} failed")


@router.get("/images")
async def list_images_route(
	request: Request,
	page: int = Query(1),
	limit: int = Query(100),
	day: Optional[int] = Query(None),
	category: Optional[str] = Query(None),
	tags: Optional[str] = Query(None),
	sort_by: str = Query("date", alias="sortBy"),
	sort_order: str = Query("desc", alias="sortOrder"),
	search: str = Query(""),
	refresh: bool = Query(False),
):
	"""Return a filtered, sorted page of the catalog."""
	query = GalleryQuery(
		page=page,
		limit=limit,
		day=day,
		category=category or None,
		tags=[tag.strip() for tag in tags.split(",") if tag.strip()] if tags else None,
		sort_by=sort_by,
		sort_order=sort_order,
		search=search.strip(),
	)
	try:
		return await get_images(request, query, refresh=refresh)
	except HTTPException:
		raise
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc))
	except Exception as exc:
		raise _server_error("Listing images", exc)


@router.post("/images/cache/clear")
async def clear_cache_route(request: Request):
	return await clear_cache(request)


@router.post("/upload", dependencies=[Depends(require_admin)])
async def upload_route(
	request: Request,
	file: UploadFile = File(...),
	day: int = Form(1),
	title: Optional[str] = Form(None),
):
	"""Upload one image into a gallery day."""
	try:
		return await upload_image(request, file, day, title)
	except HTTPException:
		raise
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc))
	except Exception as exc:
		raise _server_error("Upload", exc)


@router.post("/upload/bulk", dependencies=[Depends(require_admin)])
async def bulk_upload_route(
	request: Request,
	files: List[UploadFile] = File(...),
	day: int = Form(1),
):
	"""Upload several images into one gallery day."""
	try:
		return await upload_images(request, files, day)
	except HTTPException:
		raise
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc))
	except Exception as exc:
		raise _server_error("Bulk upload", exc)


@router.put("/images/update", dependencies=[Depends(require_admin)])
async def update_route(request: Request, payload: UpdatePayload):
	"""Change the day, title, category, tags or highlight flag of an image."""
	try:
		return await edit_image(
			request,
			payload.image_id,
			day=payload.day,
			title=payload.title,
			category=payload.category,
			tags=payload.tags,
			is_highlight=payload.is_highlight,
		)
	except HTTPException:
		raise
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc))
	except Exception as exc:
		raise _server_error("Update", exc)


@router.delete("/images/delete", dependencies=[Depends(require_admin)])
async def delete_route(request: Request, payload: DeletePayload):
	try:
		return await remove_image(request, payload.image_id)
	except HTTPException:
		raise
	except Exception as exc:
		raise _server_error("Delete", exc)


@router.post("/download-batch")
async def download_batch_route(request: Request, payload: DownloadPayload):
	"""Return a ZIP of the selected images grouped into day folders."""
	items = [
		DownloadItem(id=image.id, title=image.title, full_url=image.full_url, day=image.day)
		for image in payload.images
	]
	try:
		return await download_images(request, items)
	except HTTPException:
		raise
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc))
	except Exception as exc:
		raise _server_error("Download", exc)


@router.post("/sync", dependencies=[Depends(require_admin)])
async def sync_route(request: Request):
	"""Add bucket images missing from the catalog and migrate legacy ids."""
	try:
		return await sync_images(request)
	except HTTPException:
		raise
	except ValueError as exc:
		raise HTTPException(status_code=400, detail=str(exc))
	except Exception as exc:
		raise _server_error("Sync", exc)


@router.get("/images/{image_id}/display")
async def display_id_route(image_id: str):
	return describe_id(image_id)
