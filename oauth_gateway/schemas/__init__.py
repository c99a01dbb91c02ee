"""
Pydantic Schemas
"""

from .drive import DriveToken, TokenResponse
from .files import FileEntry, FileListing
from .identity import CanonicalUserIdentity, UserRegistration
from .project import ProjectId
from .session import FlowRedirect, FlowSession

__all__ = [
    "CanonicalUserIdentity",
    "DriveToken",
    "FileEntry",
    "FileListing",
    "FlowRedirect",
    "FlowSession",
    "ProjectId",
    "TokenResponse",
    "UserRegistration",
]
