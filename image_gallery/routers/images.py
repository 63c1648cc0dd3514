from fastapi import APIRouter, Depends, HTTPException, UploadFile, File, Form
from typing import AsyncIterator, Optional
from io import BytesIO
import logging
import httpx
from PIL import Image, UnidentifiedImageError
from ..core.models import UploadResponse, GalleryResponse
from ..core.tokens import token_store
from ..web3.clients import Web3StorageClient, web3storage
from ..web3.storage import store_image, list_gallery

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/images", tags=["images"])


def get_token() -> str:
    # sync so FastAPI reads the token file in its threadpool, off the event loop
    return token_store.get() or ""


async def get_client(token: str = Depends(get_token)) -> AsyncIterator[Web3StorageClient]:
    """One client per request, built with the token saved at request time."""
    async with web3storage(token=token) as client:
        yield client


def _validate_image(data: bytes) -> None:
    # Only accept bytes Pillow recognises as an image
    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError):
        raise ValueError("unsupported_image_type")


@router.post(
    "/upload-file",
    response_model=UploadResponse,
    status_code=201,
    summary="Upload an image with a caption",
    description=(
        "Select an image file to upload using multipart form-data.\n\n"
        "Fields:\n"
        "- `file` (required): the image file.\n"
        "- `caption` (optional): free text stored in metadata.json next to the image.\n\n"
        "The image and metadata.json are stored together under one CID. The response "
        "carries the ipfs:// URI and the gateway URL of both files."
    ),
)
async def upload_file(
    file: UploadFile = File(...),
    caption: Optional[str] = Form(None),
    client: Web3StorageClient = Depends(get_client),
):
    try:
        data = await file.read()
        if not file.filename or not data:
            raise ValueError("no_file_selected")
        _validate_image(data)

        result = await store_image(
            client,
            filename=file.filename,
            data_bytes=data,
            caption=caption,
            on_root_cid_ready=lambda cid: logger.info("computed cid %s for %s", cid, file.filename),
            on_stored_chunk=lambda size: logger.info("sent %d bytes for %s", size, file.filename),
        )
        return UploadResponse(**result)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"upload_failed {e}")
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"upload_failed {e}")


@router.get(
    "",
    response_model=GalleryResponse,
    summary="List gallery images",
    description=(
        "Walks every upload owned by the configured token and returns the ones "
        "uploaded by this gallery, in backend order.\n\n"
        "Uploads whose metadata.json can't be fetched or parsed are reported in "
        "`failures` and do not abort the listing. Without a token the gallery is empty."
    ),
)
async def list_images(client: Web3StorageClient = Depends(get_client)):
    try:
        result = await list_gallery(client)
        return GalleryResponse(count=len(result["items"]), **result)
    except httpx.HTTPError as e:
        raise HTTPException(status_code=502, detail=f"list_failed {e}")
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"list_failed {e}")
