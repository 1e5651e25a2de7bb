# core/models.py
from pydantic import BaseModel, Field, model_validator
from typing import List, Optional, Any
from enum import Enum


# --- Enums ---

class OwnerKind(str, Enum):
    """Kinds of records that own at most one image asset."""
    EVENT = "event"
    SLIDE = "slide"
    STARTUP = "startup"
    SPONSOR = "sponsor"
    MEMBER = "member"
    SUCCESS_STORY = "success_story"
    RECORDING = "recording"
    PROFILE = "profile"


class UploadStage(str, Enum):
    """Upload workflow states"""
    IDLE = "idle"
    VALIDATING = "validating"
    UPLOADING = "uploading"
    LINKING = "linking"
    DONE = "done"
    FAILED = "failed"


# --- Core Data Models ---

class AssetProfile(BaseModel):
    """Storage and database contract for one kind of owned asset."""
    kind: OwnerKind
    bucket: str = Field(..., description="Storage bucket the assets of this kind live in")
    table: str = Field(..., description="Table holding the owner records")
    column: str = Field(..., description="Column of the owner record that stores the asset URL")
    max_bytes: int = Field(..., gt=0)
    allowed_types: List[str]
    key_prefix: str = Field(default="", description="Folder inside the bucket, e.g. 'members/'")
    nullable: bool = Field(default=True, description="False when the owner row requires a reference")


class AssetFile(BaseModel):
    """A candidate file handed in by a caller, not yet validated."""
    filename: str
    content_type: Optional[str] = None
    content: bytes = Field(default=b"", repr=False)
    size: Optional[int] = Field(None, ge=0, description="Byte length; must equal len(content) when content is given")

    @model_validator(mode='after')
    def fill_size(self):
        if self.content:
            if self.size is not None and self.size != len(self.content):
                raise ValueError(f"Declared size {self.size} does not match content length {len(self.content)}")
            self.size = len(self.content)
        elif self.size is None:
            self.size = 0
        return self


class AssetRef(BaseModel):
    """A stored asset: where it lives and how to fetch it."""
    bucket: str
    key: str
    url: str


class ValidationResult(BaseModel):
    ok: bool
    error_code: Optional[str] = None
    title: Optional[str] = None
    message: Optional[str] = None


class UploadResult(BaseModel):
    """Terminal outcome of one orchestrated upload."""
    status: str = Field(description="'success' or 'error'")
    stage: UploadStage
    kind: OwnerKind
    owner_id: Optional[str] = None
    url: Optional[str] = None
    key: Optional[str] = None
    attempts: int = 0
    progress: int = Field(default=0, ge=0, le=100)
    linked: bool = False
    error_code: Optional[str] = None
    title: Optional[str] = None
    message: Optional[str] = None


class AssetReferenceUpdate(BaseModel):
    """Request body to point an owner record at a different asset."""
    url: Optional[str] = None


class OwnerAssetReference(BaseModel):
    kind: OwnerKind
    owner_id: str
    url: Optional[str] = None
    previous_url: Optional[str] = None
    reclaim_scheduled: bool = False


# --- API Response Models ---

class ApiResponse(BaseModel):
    """Standard response wrapper for the asset service and the gateway."""
    status: str = Field(description="'success' or 'error'")
    data: Any | None = Field(default=None, description="The primary data payload (depends on the endpoint)")
    message: Optional[str] = Field(default=None, description="Optional status message or error details")
