"""Validation helpers for uploaded image files."""

from fastapi import HTTPException, UploadFile

IMAGE_EXTENSIONS = (
    ".jpg",
    ".jpeg",
    ".png",
    ".gif",
    ".webp",
    ".bmp",
    ".tif",
    ".tiff",
    ".heic",
)


def is_image_upload(upload: UploadFile) -> bool:
    """Return True when the upload declares an image content type.

    Clients that omit the content type are judged by the filename extension.
    """
    if upload.content_type:
        content_type = upload.content_type.lower().split(";", 1)[0].strip()
        if content_type != "application/octet-stream":
            return content_type.startswith("image/")
    return bool(upload.filename) and upload.filename.lower().endswith(IMAGE_EXTENSIONS)


def validate_image_file(upload: UploadFile) -> None:
    """Raise 400 unless `upload` looks like an image."""
    if not upload.filename:
        raise HTTPException(status_code=400, detail="Image file must have a filename.")
    if not is_image_upload(upload):
        raise HTTPException(status_code=400, detail=f"Uploaded file must be an image: {upload.filename}")


async def read_image_bytes(upload: UploadFile) -> bytes:
    """Read validated image bytes, ensuring the upload is not empty."""
    validate_image_file(upload)
    data = await upload.read()
    if not data:
        raise HTTPException(status_code=400, detail=f"Uploaded image is empty: {upload.filename}")
    return data
