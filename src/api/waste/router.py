# waste.router.py
from fastapi import APIRouter, Depends, UploadFile, File, HTTPException, Request, status
from fastapi.responses import HTMLResponse, Response
from fastapi.templating import Jinja2Templates
from PIL import UnidentifiedImageError
from starlette.concurrency import run_in_threadpool
from functools import lru_cache
from typing import Optional, Tuple
import logging as log

from .schema import AnalyzeResponse, DeleteImageResponse, HealthResponse
from .service import ImageNotFoundError, WasteService
from provider.minIO import ObjectTooLargeError
import os

import tempfile
import uuid

router = APIRouter(tags=["waste"])

MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", 10 * 1024 * 1024))
NOT_AN_IMAGE_MESSAGE = "The uploaded file is not a valid image."


def limit_message(limit_bytes: int) -> str:
    return f"The uploaded file exceeds the {limit_bytes / (1024 * 1024):g} MB limit. Please try a smaller file."


TEMP_DIR = os.path.join(tempfile.gettempdir(), "uploads")
os.makedirs(TEMP_DIR, exist_ok=True)

templates = Jinja2Templates(directory=os.path.join(os.path.dirname(__file__), "view"))


@lru_cache
def get_waste_service() -> WasteService:
    return WasteService()


def save_upload(file: Optional[UploadFile]) -> Tuple[str, str]:
    """
    Validate the upload and write it to TEMP_DIR under a unique name.
    Nothing external is called before this passes.
    """
    if file is None or not file.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")

    data = file.file.read(MAX_UPLOAD_BYTES + 1)
    if len(data) > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=limit_message(MAX_UPLOAD_BYTES))
    if not data:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")

    ext = os.path.splitext(file.filename)[1].lower() or ".jpg"
    dest_path = os.path.join(TEMP_DIR, f"image-{uuid.uuid4().hex}{ext}")
    with open(dest_path, "wb") as buffer:
        buffer.write(data)
    return dest_path, file.content_type or "image/jpeg"


def clean_files(*paths: str) -> None:
    for p in paths:
        try:
            if p and os.path.exists(p):
                os.remove(p)
        except OSError as e:
            log.warning("Could not remove %s: %s", p, e)


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def home(request: Request):
    return templates.TemplateResponse(request, "home.html", {"max_mb": MAX_UPLOAD_BYTES // (1024 * 1024)})


@router.post("/upload", response_class=HTMLResponse)
def upload_image(
    request: Request,
    image: Optional[UploadFile] = File(None),
    service: WasteService = Depends(get_waste_service),
):
    path, content_type = save_upload(image)
    try:
        summary = service.process_file(path, content_type)
    except ObjectTooLargeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=limit_message(exc.limit))
    except UnidentifiedImageError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=NOT_AN_IMAGE_MESSAGE)
    except Exception as exc:
        log.exception("Error in /upload")
        raise HTTPException(status_code=500, detail=str(exc))
    finally:
        clean_files(path)

    if summary is None:
        return HTMLResponse("<h2>No objects found</h2>")
    return templates.TemplateResponse(request, "result.html", {"summary": summary})


@router.post("/analyze", response_model=AnalyzeResponse)
def analyze_image(
    image: Optional[UploadFile] = File(None),
    service: WasteService = Depends(get_waste_service),
):
    path, content_type = save_upload(image)
    try:
        _, detections = service.detect_from_file(path, content_type)
    except UnidentifiedImageError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=NOT_AN_IMAGE_MESSAGE)
    except Exception as exc:
        log.exception("Error in /analyze")
        raise HTTPException(status_code=500, detail=str(exc))
    finally:
        clean_files(path)
    return AnalyzeResponse(detections=detections)


@router.get("/download/{image_id}")
def download_image(image_id: str, service: WasteService = Depends(get_waste_service)):
    try:
        filename, data = service.fetch_image(image_id)
    except ImageNotFoundError:
        raise HTTPException(status_code=404, detail="Image not found")
    except Exception:
        log.exception("Error in /download")
        raise HTTPException(status_code=500, detail="Error downloading image")

    return Response(
        content=data,
        media_type="image/jpeg",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def _read_image_id(request: Request) -> Optional[str]:
    # accepts both JSON and form-encoded bodies
    if request.headers.get("content-type", "").startswith("application/json"):
        try:
            body = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid JSON body")
        image_id = body.get("imageId") if isinstance(body, dict) else None
    else:
        form = await request.form()
        image_id = form.get("imageId")
    return str(image_id) if image_id else None


@router.post("/delete-image", response_model=DeleteImageResponse)
async def delete_image(request: Request, service: WasteService = Depends(get_waste_service)):
    image_id = await _read_image_id(request)
    if not image_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="imageId is required")

    try:
        await run_in_threadpool(service.delete_image, image_id)
    except ImageNotFoundError:
        raise HTTPException(status_code=404, detail="Metadata not found")
    except Exception as exc:
        log.exception("Error in /delete-image")
        raise HTTPException(status_code=500, detail=str(exc))
    return DeleteImageResponse(success=True)


@router.get("/health", response_model=HealthResponse)
def health(service: WasteService = Depends(get_waste_service)):
    return service.health()
