"""
File listing schemas
"""
from typing import List, Optional

from pydantic import BaseModel

from oauth_gateway.core.oauth.providers import DriveProvider


class FileEntry(BaseModel):
    id: str
    name: str
    is_directory: bool
    mime_type: str
    size: Optional[int] = None
    created_time: Optional[str] = None
    modified_time: Optional[str] = None


class FileListing(BaseModel):
    """Files of one drive folder, whatever the provider"""
    provider_kind: DriveProvider
    path: Optional[str] = None
    drive_id: Optional[str] = None
    files: List[FileEntry] = []
