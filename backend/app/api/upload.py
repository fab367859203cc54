"""Image upload endpoints."""

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from app.api.deps import AuthContext, get_auth, require_moderator
from app.api.responses import ok
from app.clients.image_store import build_image_store
from app.config import settings
from app.errors import ValidationFailed
from app.services.uploads import (
    DEFAULT_FOLDER, MAX_MULTIPLE_FILES, UploadService, upload_config, validate_image,
)

router = APIRouter()


def get_upload_service() -> UploadService:
    return UploadService(build_image_store(settings))


async def _read(file: Optional[UploadFile], label: str) -> tuple[bytes, Optional[str]]:
    if file is None or not file.filename:
        raise ValidationFailed(f"No {label} file provided")
    return await _read_bounded(file)


async def _read_bounded(file: UploadFile) -> tuple[bytes, Optional[str]]:
    # Declared size first; the read itself stops one byte past the limit
    if file.size is not None:
        validate_image(file.content_type, file.size)
    data = await file.read(settings.upload_max_bytes + 1)
    return data, file.content_type


@router.post("/upload/poster")
async def upload_poster(
    poster: Optional[UploadFile] = File(None),
    auth: AuthContext = Depends(require_moderator),
    uploads: UploadService = Depends(get_upload_service),
):
    data, content_type = await _read(poster, "poster")
    result = await uploads.upload_preset("poster", data, content_type)
    return ok(result, "Poster uploaded successfully")


@router.post("/upload/backdrop")
async def upload_backdrop(
    backdrop: Optional[UploadFile] = File(None),
    auth: AuthContext = Depends(require_moderator),
    uploads: UploadService = Depends(get_upload_service),
):
    data, content_type = await _read(backdrop, "backdrop")
    result = await uploads.upload_preset("backdrop", data, content_type)
    return ok(result, "Backdrop uploaded successfully")


@router.post("/upload/profile")
async def upload_profile(
    profile: Optional[UploadFile] = File(None),
    auth: AuthContext = Depends(get_auth),
    uploads: UploadService = Depends(get_upload_service),
):
    data, content_type = await _read(profile, "profile")
    result = await uploads.upload_preset("profile", data, content_type)
    return ok(result, "Profile image uploaded successfully")


@router.post("/upload/image")
async def upload_image(
    image: Optional[UploadFile] = File(None),
    folder: str = Form(DEFAULT_FOLDER),
    width: Optional[int] = Form(None),
    height: Optional[int] = Form(None),
    quality: int = Form(85),
    auth: AuthContext = Depends(require_moderator),
    uploads: UploadService = Depends(get_upload_service),
):
    data, content_type = await _read(image, "image")
    result = await uploads.upload(
        data, content_type, folder=folder, width=width, height=height, quality=quality
    )
    return ok(result, "Image uploaded successfully")


@router.post("/upload/multiple")
async def upload_multiple(
    images: Optional[list[UploadFile]] = File(None),
    folder: str = Form(DEFAULT_FOLDER),
    width: Optional[int] = Form(None),
    height: Optional[int] = Form(None),
    quality: int = Form(85),
    auth: AuthContext = Depends(require_moderator),
    uploads: UploadService = Depends(get_upload_service),
):
    files = [f for f in images or [] if f.filename]
    if not files:
        raise ValidationFailed("No image files provided")
    if len(files) > MAX_MULTIPLE_FILES:
        raise ValidationFailed(f"At most {MAX_MULTIPLE_FILES} images can be uploaded at once")

    payloads = [await _read_bounded(f) for f in files]
    results = await asyncio.gather(*(
        uploads.upload(data, content_type, folder=folder, width=width, height=height, quality=quality)
        for data, content_type in payloads
    ))
    return ok({"images": list(results)}, f"{len(results)} images uploaded successfully")


@router.get("/upload/config")
async def get_upload_config():
    return ok(upload_config())


@router.get("/upload/info/{file_name}")
async def file_info(
    file_name: str,
    folder: str = DEFAULT_FOLDER,
    auth: AuthContext = Depends(get_auth),
    uploads: UploadService = Depends(get_upload_service),
):
    return ok(await uploads.info(file_name, folder))


@router.delete("/upload/{file_name}")
async def delete_file(
    file_name: str,
    folder: str = DEFAULT_FOLDER,
    auth: AuthContext = Depends(require_moderator),
    uploads: UploadService = Depends(get_upload_service),
):
    await uploads.delete(file_name, folder)
    return ok(message="File deleted successfully")
