from typing import List

from pydantic import BaseModel


class UploadedFile(BaseModel):
    url: str
    filename: str
    size: int
    mimetype: str


class UploadResponse(BaseModel):
    uploaded: List[UploadedFile]


class DeleteResponse(BaseModel):
    deleted: bool
    name: str


class HealthResponse(BaseModel):
    ok: bool
