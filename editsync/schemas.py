"""
Pydantic schemas for GitHub contents API responses.

Only the fields editsync reads are declared; everything else is ignored.
"""

import base64
import binascii
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class EntryType(str, Enum):
    FILE = "file"
    DIR = "dir"
    SYMLINK = "symlink"
    SUBMODULE = "submodule"


class FileEntry(BaseModel):
    """One item of a directory listing."""
    model_config = ConfigDict(extra="ignore")

    name: str
    path: str
    type: EntryType
    sha: str = ""
    size: int = 0

    @property
    def is_dir(self) -> bool:
        return self.type == EntryType.DIR


class ContentResponse(FileEntry):
    """GET /repos/{owner}/{repo}/contents/{path} for a single file."""
    content: Optional[str] = None
    encoding: Optional[str] = None

    def decoded(self) -> str:
        """Decode base64 content to UTF-8 text."""
        if self.content is None:
            return ""
        if self.encoding not in (None, "base64"):
            raise ValueError(f"Unsupported content encoding: {self.encoding}")
        try:
            # GitHub wraps base64 at 60 columns
            raw = base64.b64decode("".join(self.content.split()))
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 content for {self.path}: {e}") from e
        return raw.decode("utf-8")


class CommitContent(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sha: str
    path: Optional[str] = None


class WriteResponse(BaseModel):
    """PUT /repos/{owner}/{repo}/contents/{path}."""
    model_config = ConfigDict(extra="ignore")

    content: CommitContent
    commit: dict = Field(default_factory=dict)


class RepositoryInfo(BaseModel):
    """GET /repos/{owner}/{repo}."""
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str
    full_name: str
    private: bool = False
    default_branch: str = "main"
