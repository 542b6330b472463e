from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

VARIANT_NAMES = ("raw", "full", "big_thumb", "small_thumb")


class PhotoMetadata(BaseModel):
    """Sidecar record for one photo identity.

    Variant filenames (``raw``, ``full``, ``big_thumb``, ``small_thumb``) are
    stored as extra fields keyed by the uploaded file's base name.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    tags: dict[str, bool]
    uploadTimestamp: Optional[int] = None
    camera: Optional[str] = None
    lens: Optional[str] = None
    focalLength: Optional[str] = None
    fNumber: Optional[str] = None
    shutterSpeed: Optional[str] = None
    iso: Optional[Union[int, str]] = None

    def variant(self, name: str) -> Optional[str]:
        value = (self.model_extra or {}).get(name)
        return value if isinstance(value, str) else None

    def to_document(self) -> dict:
        return self.model_dump(exclude_none=True)


class ExifFields(BaseModel):
    camera: str
    lens: str
    focalLength: str
    fNumber: str
    shutterSpeed: str
    iso: Union[int, str]


class ReloadReport(BaseModel):
    sidecars: int = 0
    upserted: int = 0
    enriched: int = 0
    unenriched: int = 0
    skipped: int = 0
    tags: dict[str, bool] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)

    def record_error(self, path: object, exc: BaseException) -> None:
        self.errors.append(f"{path}: {exc}")


class LogEntryRequest(BaseModel):
    category: str
    level: str
    message: str


class ResourceAccessRequest(BaseModel):
    resource: str
    ip_address: str
