"""
Google Drive remote file store.

Lists backup archives waiting to be restored, downloads them and deletes
them once they have been dealt with.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2 import service_account
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseDownload
from pydantic import ValidationError

from ..exceptions import RemoteStoreError
from .models import CandidateFile
from .retry import retry

logger = logging.getLogger(__name__)

FOLDER_MIME_TYPE = "application/vnd.google-apps.folder"
FILE_FIELDS = "id, name, createdTime, size, parents"
PAGE_SIZE = 1000

# Failures raised by the Google client stack, from HTTP status errors down to
# socket timeouts and credential refreshes
TRANSPORT_ERRORS = (HttpError, OSError, httplib2.HttpLib2Error, GoogleAuthError)

SCOPES = [
    "https://www.googleapis.com/auth/drive",
    "https://www.googleapis.com/auth/spreadsheets",
]


class RemoteFileStore(Protocol):
    """Remote storage holding the backup archives."""

    def list_files(self, name_marker: str) -> List[CandidateFile]:
        ...

    def download(self, file_id: str, dest_path: str) -> None:
        ...

    def delete(self, file_id: str) -> None:
        ...

    def get_metadata(self, file_id: str, fields: str) -> Dict[str, Any]:
        ...


def load_credentials(service_account_file: str):
    """Load service account credentials for Drive and Sheets."""
    return service_account.Credentials.from_service_account_file(
        service_account_file, scopes=SCOPES
    )


def candidate_query(name_marker: str) -> str:
    """Drive search query selecting backup archives."""
    marker = name_marker.replace("\\", "\\\\").replace("'", "\\'")
    return (
        f"trashed = false and mimeType != '{FOLDER_MIME_TYPE}' "
        f"and name contains '{marker}'"
    )


class GoogleDriveStore:
    """Remote file store backed by the Google Drive v3 API."""

    def __init__(self, service, retry_attempts: int = 3, retry_delay: float = 5):
        """
        Initialize the store.

        Args:
            service: Drive v3 service resource
            retry_attempts: Attempts for downloads and metadata lookups
            retry_delay: Delay between attempts in seconds
        """
        self.service = service
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay

    @classmethod
    def from_credentials(cls, credentials, **kwargs) -> "GoogleDriveStore":
        service = build("drive", "v3", credentials=credentials, cache_discovery=False)
        return cls(service, **kwargs)

    def _retrying(self, func):
        return retry(self.retry_attempts, self.retry_delay, (RemoteStoreError,))(func)

    def list_files(self, name_marker: str) -> List[CandidateFile]:
        """
        List candidate files ordered by creation time.

        Raises:
            RemoteStoreError: If the Drive API call fails
        """
        query = candidate_query(name_marker)
        logger.info(f"Executing Drive query: {query}")

        files: List[CandidateFile] = []
        page_token: Optional[str] = None
        try:
            while True:
                response = (
                    self.service.files()
                    .list(
                        q=query,
                        pageSize=PAGE_SIZE,
                        fields=f"nextPageToken, files({FILE_FIELDS})",
                        orderBy="createdTime",
                        pageToken=page_token,
                    )
                    .execute()
                )
                files.extend(CandidateFile.model_validate(item) for item in response.get("files", []))
                page_token = response.get("nextPageToken")
                if not page_token:
                    break
        except TRANSPORT_ERRORS as e:
            raise RemoteStoreError(f"Drive API error: {e}") from e
        except ValidationError as e:
            raise RemoteStoreError(f"Unexpected Drive file resource: {e}") from e

        logger.info(f"Drive API returned {len(files)} files")
        return files

    def download(self, file_id: str, dest_path: str) -> None:
        """Download a file's content to dest_path."""
        self._retrying(self._download)(file_id, dest_path)

    def _download(self, file_id: str, dest_path: str) -> None:
        request = self.service.files().get_media(fileId=file_id)
        try:
            with open(dest_path, "wb") as fh:
                downloader = MediaIoBaseDownload(fh, request)
                done = False
                while not done:
                    status, done = downloader.next_chunk()
                    if status:
                        logger.debug(f"Download {int(status.progress() * 100)}%")
        except TRANSPORT_ERRORS as e:
            raise RemoteStoreError(f"Failed to download file {file_id}: {e}") from e

    def delete(self, file_id: str) -> None:
        """Permanently delete a file."""
        try:
            self.service.files().delete(fileId=file_id).execute()
        except TRANSPORT_ERRORS as e:
            raise RemoteStoreError(f"Failed to delete Drive file {file_id}: {e}") from e

    def get_metadata(self, file_id: str, fields: str) -> Dict[str, Any]:
        """Fetch selected metadata fields of a file or folder."""
        return self._retrying(self._get_metadata)(file_id, fields)

    def _get_metadata(self, file_id: str, fields: str) -> Dict[str, Any]:
        try:
            return self.service.files().get(fileId=file_id, fields=fields).execute()
        except TRANSPORT_ERRORS as e:
            raise RemoteStoreError(f"Failed to get metadata for {file_id}: {e}") from e
