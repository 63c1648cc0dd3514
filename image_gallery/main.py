import logging
from fastapi import FastAPI
from .core.config import settings
from .routers.images import router as images_router
from .routers.settings import router as settings_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

tags_metadata = [
    {
        "name": "images",
        "description": (
            "Endpoints to upload images to web3.storage and list the gallery.\n\n"
            "- Upload via multipart with an optional caption.\n"
            "- Image + metadata.json are stored under one content identifier (CID).\n"
            "- The gallery is rebuilt from the uploads listing on every call."
        ),
    },
    {
        "name": "settings",
        "description": "Save, check and delete the web3.storage API token.",
    },
]

app = FastAPI(
    title="Image Gallery",
    description=(
        "How to Use:\n\n"
        "1) Save your web3.storage token: PUT /settings/token with {\"token\": \"...\"}.\n"
        "2) Upload an image: POST /images/upload-file, select an image and optionally pass a `caption`.\n"
        "3) Browse: GET /images lists every image uploaded through this gallery, with gateway URLs.\n\n"
        "Notes: the CID is computed locally before upload, so the same image and caption always map to the same CID."
    ),
    openapi_tags=tags_metadata,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

app.include_router(images_router)
app.include_router(settings_router)
