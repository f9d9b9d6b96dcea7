"""Pydantic models for request/response validation."""

from pydantic import BaseModel, Field


# --- Auth ---


class LoginRequest(BaseModel):
    username: str
    password: str


class LoginResponse(BaseModel):
    username: str
    message: str = "Login successful"


class UserInfo(BaseModel):
    username: str


# --- Error ---


class ErrorResponse(BaseModel):
    error: str


# --- Exports ---


class FolderMapping(BaseModel):
    hostpath: str = Field(..., description="Absolute host directory to export")
    map_uid: int | None = Field(None, ge=0, description="Rendered as -mapall=uid[:gid]")
    map_gid: int | None = Field(None, ge=0)
    options: list[str] = Field(default_factory=list, description="Extra flags, e.g. ['-alldirs']")


class ExportWriteRequest(BaseModel):
    ip: str = Field(..., description="Client IP address, network or hostname")
    folders: list[FolderMapping] = Field(..., min_length=1)


class PruneRequest(BaseModel):
    valid_ids: list[str] = Field(default_factory=list, description="Ids whose blocks must be kept")


class ExportBlock(BaseModel):
    id: str
    lines: list[str]
    start: int
    end: int | None = None
    terminated: bool = True


class ExportWriteResponse(BaseModel):
    message: str
    notices: list[str] = Field(default_factory=list)


class PruneResponse(BaseModel):
    pruned: list[str]
    notices: list[str] = Field(default_factory=list)


# --- System ---


class NfsdStatus(BaseModel):
    available: bool


class PolicyStatus(BaseModel):
    path: str
    exists: bool
    group: str


class PolicyEnsureResponse(BaseModel):
    created: bool
    notices: list[str] = Field(default_factory=list)
