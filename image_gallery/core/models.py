from typing import List
from pydantic import BaseModel


class MetadataSidecar(BaseModel):
    path: str
    caption: str = ""

class UploadResponse(BaseModel):
    cid: str
    image_uri: str
    image_gateway_url: str
    metadata_uri: str
    metadata_gateway_url: str

class GalleryItem(BaseModel):
    cid: str
    path: str
    caption: str
    gateway_url: str
    uri: str

class ListFailure(BaseModel):
    cid: str
    name: str = ""
    reason: str

class GalleryResponse(BaseModel):
    count: int
    items: List[GalleryItem]
    failures: List[ListFailure] = []

class TokenRequest(BaseModel):
    token: str

class TokenStatus(BaseModel):
    configured: bool
