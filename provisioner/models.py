from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Difficulty(str, Enum):
    peaceful = "peaceful"
    easy = "easy"
    normal = "normal"
    hard = "hard"


class ModpackSource(str, Enum):
    none = "none"
    remote_url = "remote-url"
    file = "file"


class JobStatus(str, Enum):
    running = "running"
    awaiting_input = "awaiting_input"
    succeeded = "succeeded"
    failed = "failed"
    cancelled = "cancelled"


class ServerCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=25)
    version: Optional[str] = Field(None, min_length=1, max_length=32)
    difficulty: Optional[Difficulty] = None
    include_world: bool = False
    modpack: ModpackSource = ModpackSource.none


class ServerInfo(BaseModel):
    id: int
    name: str
    version: str
    difficulty: Difficulty
    port: int
    started: bool


class ServerListResponse(BaseModel):
    servers: list[ServerInfo]


class JobEvent(BaseModel):
    kind: str
    message: str


class JobInfo(BaseModel):
    job_id: str
    name: str
    status: JobStatus
    events: list[JobEvent]
    server: Optional[ServerInfo] = None
    error: Optional[str] = None


class ReplyRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=2048)


class VersionListResponse(BaseModel):
    versions: list[str]
