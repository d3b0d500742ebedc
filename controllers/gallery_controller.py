from typing import Any, Dict, List, Optional

from fastapi import HTTPException, Request, UploadFile
from fastapi.responses import Response

from dal.metadata_store import MetadataStore
from services.blob_storage import BaseBlobStorage
from services.catalog_editor import ImageNotFoundError, delete_image, update_image
from services.gallery_query import GalleryQuery, list_images, load_catalog
from services.id_generator import format_id_for_display, parse_date_based_id
from services.image_cache import ImageCache
from services.image_store import save_uploaded_image, save_uploaded_images
from services.sync_service import StorageUnavailableError, sync_catalog
from services.zip_builder import DownloadItem, build_zip, download_filename, items_from_catalog
from utils.media_validation import is_image_upload, read_image_bytes


def _collaborators(request: Request):
    state = request.app.state
    store: MetadataStore = state.store
    storage: BaseBlobStorage = state.storage
    cache: ImageCache = state.cache
    return store, storage, cache


async def get_images(request: Request, query: GalleryQuery, refresh: bool = False) -> Dict[str, Any]:
    """Return one page of the catalog, noting whether it came from the cache."""
    store, _, cache = _collaborators(request)
    result, age = await list_images(store, cache, query, refresh=refresh)
    payload = dict(result)
    payload["cached"] = age is not None
    if age is not None:
        payload["cacheAge"] = round(age, 3)
    return payload


async def clear_cache(request: Request) -> Dict[str, Any]:
    _, _, cache = _collaborators(request)
    cache.invalidate()
    return {"success": True, "message": "Cache cleared"}


async def upload_image(request: Request, file: UploadFile, day: int, title: Optional[str] = None) -> Dict[str, Any]:
    """Store one uploaded image and return its catalog record.

    Args:
        request: FastAPI Request (to access app.state collaborators).
        file: Uploaded image file.
        day: Gallery day bucket, 1-9.
        title: Optional display title.

    Returns:
        A dict with `success`, the stored `image` and a `message`.
    """
    store, storage, cache = _collaborators(request)
    data = await read_image_bytes(file)
    cleaned_title = title.strip() if title and title.strip() else None

    record = await save_uploaded_image(
        store,
        storage,
        cache,
        data,
        file.filename or "image",
        day,
        title=cleaned_title,
        processor=request.app.state.processor,
    )
    return {"success": True, "image": record.to_dict(), "message": f"Uploaded {file.filename}"}


async def upload_images(request: Request, files: List[UploadFile], day: int) -> Dict[str, Any]:
    """Store several images into one gallery day.

    Files that are not images are reported as failures without stopping the
    batch.
    """
    if not files:
        raise HTTPException(status_code=400, detail="No files provided")

    store, storage, cache = _collaborators(request)
    accepted = []
    rejected = []
    for upload in files:
        name = upload.filename or "image"
        if not is_image_upload(upload):
            rejected.append({"filename": name, "error": f"{name}: Not an image file"})
            continue
        data = await upload.read()
        if not data:
            rejected.append({"filename": name, "error": f"{name}: File is empty"})
            continue
        accepted.append((name, data))

    result = await save_uploaded_images(store, storage, cache, accepted, day, processor=request.app.state.processor)
    result.failed.extend(rejected)

    return {
        "success": result.success,
        "message": f"Bulk upload completed: {len(result.uploaded)} successful, {len(result.failed)} failed",
        "results": {
            "uploaded": [record.to_dict() for record in result.uploaded],
            "failed": result.failed,
            "totalProcessed": result.total_processed,
        },
    }


async def edit_image(
    request: Request,
    image_id: int,
    day: Optional[int] = None,
    title: Optional[str] = None,
    category: Optional[str] = None,
    tags: Optional[List[str]] = None,
    is_highlight: Optional[bool] = None,
) -> Dict[str, Any]:
    store, storage, cache = _collaborators(request)
    try:
        record, moved = await update_image(
            store,
            storage,
            cache,
            image_id,
            day=day,
            title=title,
            category=category,
            tags=tags,
            is_highlight=is_highlight,
        )
    except ImageNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    message = "Image updated"
    if moved:
        message = f"Image updated and moved to day {record.day}"
    return {"success": True, "image": record.to_dict(), "moved": moved, "message": message}


async def remove_image(request: Request, image_id: int) -> Dict[str, Any]:
    store, storage, cache = _collaborators(request)
    try:
        record = await delete_image(store, storage, cache, image_id)
    except ImageNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"success": True, "deletedImage": record.to_dict(), "message": f"Image {image_id} deleted"}


async def download_images(request: Request, items: List[DownloadItem]) -> Response:
    """Bundle the requested catalog images into a ZIP attachment.

    Requested ids are looked up in the catalog; blob paths supplied by the
    client are never read.
    """
    store, storage, cache = _collaborators(request)
    records = await load_catalog(store, cache)
    content = await build_zip(storage, items_from_catalog(records, items))
    filename = download_filename()
    return Response(
        content=content,
        media_type="application/zip",
        headers={
            "Content-Disposition": f'attachment; filename="{filename}"',
            "Content-Length": str(len(content)),
        },
    )


async def sync_images(request: Request) -> Dict[str, Any]:
    store, storage, cache = _collaborators(request)
    try:
        result = await sync_catalog(store, storage, cache)
    except StorageUnavailableError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc
    return {
        "success": True,
        "message": f"Sync completed: {result.total_images} images ({result.new_images} new from storage)",
        **result.to_dict(),
    }


def describe_id(raw_id: str) -> Dict[str, Any]:
    """Return the display form of an identifier plus its decoded parts."""
    value: Any = int(raw_id) if raw_id.isascii() and raw_id.isdigit() else raw_id
    parsed = parse_date_based_id(raw_id)
    return {
        "id": value,
        "display": format_id_for_display(raw_id if parsed else value),
        "isDateBased": parsed is not None,
        "parsed": None
        if parsed is None
        else {
            "date": parsed.date.isoformat(),
            "day": parsed.gallery_day,
            "sequence": parsed.sequence,
        },
    }
