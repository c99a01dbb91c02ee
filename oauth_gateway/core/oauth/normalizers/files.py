"""
File listing normalizers.

Providers disagree on the list key (files / value / entries), on how a folder
is marked and on timestamp names. `_FILE_NORMALIZERS` maps each drive provider
to its raw entry model and converter.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, model_validator

from oauth_gateway.common.exceptions import JsonParsingError, UnsupportedProvider
from oauth_gateway.core.oauth.providers import DriveProvider
from oauth_gateway.schemas.files import FileEntry, FileListing

GOOGLE_FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
DEFAULT_PATH = "root"


class _Raw(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RawFiles(_Raw):
    inner: List[Dict[str, Any]] = Field(validation_alias=AliasChoices("files", "value", "entries"))


class RawGoogleFile(_Raw):
    id: str
    name: str
    mime_type: str = Field(validation_alias=AliasChoices("mimeType", "mime_type"))
    created_time: Optional[str] = Field(default=None, validation_alias=AliasChoices("createdTime", "created_time"))
    modified_time: Optional[str] = Field(default=None, validation_alias=AliasChoices("modifiedTime", "modified_time"))
    # Drive API v3 returns int64 values as strings
    size: Optional[int] = None


class _GraphFileFacet(_Raw):
    mime_type: str = Field(default="application/octet-stream", validation_alias=AliasChoices("mimeType", "mime_type"))


class RawGraphFile(_Raw):
    id: str
    name: str
    created_time: Optional[str] = Field(default=None, validation_alias=AliasChoices("createdDateTime", "created_time"))
    modified_time: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("lastModifiedDateTime", "modified_time")
    )
    file: Optional[_GraphFileFacet] = None
    folder: Optional[Dict[str, Any]] = None
    size: Optional[int] = None

    @model_validator(mode="after")
    def _file_or_folder(self) -> "RawGraphFile":
        if self.file is None and self.folder is None:
            raise ValueError("driveItem has neither a file nor a folder facet")
        return self


class RawDropboxFile(_Raw):
    id: str
    name: str
    tag: str = Field(validation_alias=AliasChoices(".tag", "tag"))
    client_modified: Optional[str] = None
    server_modified: Optional[str] = None
    size: Optional[int] = None


def _google(raw: RawGoogleFile) -> FileEntry:
    return FileEntry(
        id=raw.id,
        name=raw.name,
        is_directory=raw.mime_type == GOOGLE_FOLDER_MIME_TYPE,
        mime_type=raw.mime_type,
        size=raw.size,
        created_time=raw.created_time,
        modified_time=raw.modified_time,
    )


def _graph(raw: RawGraphFile) -> FileEntry:
    is_directory = raw.folder is not None
    return FileEntry(
        id=raw.id,
        name=raw.name,
        is_directory=is_directory,
        mime_type="folder" if is_directory else raw.file.mime_type,
        size=raw.size,
        created_time=raw.created_time,
        modified_time=raw.modified_time,
    )


def _dropbox(raw: RawDropboxFile) -> FileEntry:
    return FileEntry(
        id=raw.id,
        name=raw.name,
        is_directory=raw.tag == "folder",
        mime_type=raw.tag,
        size=raw.size,
        created_time=None,
        modified_time=raw.client_modified,
    )


_FILE_NORMALIZERS: Dict[DriveProvider, tuple] = {
    DriveProvider.GOOGLE: (RawGoogleFile, _google),
    DriveProvider.MSGRAPH: (RawGraphFile, _graph),
    DriveProvider.DROPBOX: (RawDropboxFile, _dropbox),
}


def normalize_files(
    provider: Union[DriveProvider, str],
    raw: Any,
    path: Optional[str] = DEFAULT_PATH,
    drive_id: Optional[str] = None,
) -> FileListing:
    """
    Convert a provider file-listing payload into a FileListing.

    Raises:
        UnsupportedProvider: provider outside the closed set
        JsonParsingError: payload or one of its entries has the wrong shape
    """
    if not isinstance(provider, DriveProvider):
        provider = DriveProvider.parse(provider)

    entry = _FILE_NORMALIZERS.get(provider)
    if entry is None:
        raise UnsupportedProvider(context=f"no file normalizer for {provider.value}")
    model, convert = entry

    try:
        listing = RawFiles.model_validate(raw)
        files = [convert(model.model_validate(item)) for item in listing.inner]
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors(include_input=False))
        raise JsonParsingError(context=f"{provider.value} file listing invalid ({fields})") from None

    return FileListing(provider_kind=provider, path=path, drive_id=drive_id, files=files)
