# src/promptimport/api/schemas.py
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional, Union


class ImportRequest(BaseModel):
    # Either the raw JSON text of the export or the already-decoded object
    payload: Union[str, Dict[str, Any]]
    format: str = "auto"


class ImportAccepted(BaseModel):
    job_id: str
    status: str
    message: str


class ErrorResponse(BaseModel):
    error: str


class DependencySnapshot(BaseModel):
    type: str
    reference: str
    status: str
    sha256: Optional[str] = None
    civitai_version_id: Optional[str] = None
    filename: Optional[str] = None
    resolved_path: Optional[str] = None
    resolved_source: Optional[str] = None
    error_message: Optional[str] = None
    download_job_id: Optional[str] = None


class JobSnapshot(BaseModel):
    job_id: str
    status: str
    progress: float
    created_at: str
    last_updated: str
    completed_at: Optional[str] = None
    error_message: Optional[str] = None
    dependencies: List[DependencySnapshot] = Field(default_factory=list)


class CivitAIKeyRequest(BaseModel):
    key: str = Field(min_length=1)


class LoraInfo(BaseModel):
    id: str
    title: str
    author: Optional[str] = None
    triggerPhrase: Optional[str] = None
    description: Optional[str] = None
    preview: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    license: Optional[str] = None
    usageCount: int = 0


class LoraList(BaseModel):
    loras: List[LoraInfo]
