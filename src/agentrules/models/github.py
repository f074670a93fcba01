"""Response shapes for the GitHub contents API.

Only the fields the rule source reads are declared; everything else in the
payload is ignored. A payload that does not validate is a transport error.
"""

from __future__ import annotations

from pydantic import BaseModel, TypeAdapter


class ContentsEntry(BaseModel):
    """Single item of a directory listing (``GET /repos/{o}/{r}/contents/{dir}``)."""

    name: str
    type: str  # "file" | "dir" | "symlink" | "submodule"
    path: str = ""


class FileContents(BaseModel):
    """Single file response (``GET /repos/{o}/{r}/contents/{dir}/{name}``)."""

    type: str
    content: str = ""
    encoding: str = "base64"  # "none" for files over 1 MB, content then empty


DirectoryListing = TypeAdapter(list[ContentsEntry])
