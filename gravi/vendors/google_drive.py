"""Client utilities for reading shared Google Drive folders."""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import requests

logger = logging.getLogger(__name__)
_SESSION = requests.Session()
_BASE_URL = "https://www.googleapis.com/drive/v3"

DEFAULT_TIMEOUT = 15
_FOLDER_ID_REGEX = re.compile(r"folders/([a-zA-Z0-9_-]+)")


class GoogleDriveError(RuntimeError):
    """Raised when the Drive API cannot list or download files."""


def extract_folder_id(url: str) -> Optional[str]:
    match = _FOLDER_ID_REGEX.search(url or "")
    return match.group(1) if match else None


def list_folder_images(folder_id: str, api_key: str, timeout: float = DEFAULT_TIMEOUT) -> List[Dict[str, Any]]:
    """Return `{id, name, mimeType}` entries for every image in a shared folder, in name order."""
    files: List[Dict[str, Any]] = []
    page_token = None
    while True:
        params = {
            "q": f"'{folder_id}' in parents and mimeType contains 'image/' and trashed = false",
            "fields": "nextPageToken, files(id, name, mimeType)",
            "orderBy": "name",
            "pageSize": 100,
            "key": api_key,
        }
        if page_token:
            params["pageToken"] = page_token
        response = _SESSION.get(f"{_BASE_URL}/files", params=params, timeout=timeout)
        if response.status_code >= 400:
            logger.error("Drive listing failed: status=%s body=%s", response.status_code, response.text[:300])
            raise GoogleDriveError(f"Drive listing failed with status {response.status_code}")
        payload = response.json()
        files.extend(payload.get("files", []))
        page_token = payload.get("nextPageToken")
        if not page_token:
            break
    logger.info("Listed %d images in Drive folder %s", len(files), folder_id)
    return files


def download_file(file_id: str, api_key: str, timeout: float = DEFAULT_TIMEOUT) -> Tuple[bytes, str]:
    params = {"alt": "media", "key": api_key}
    response = _SESSION.get(f"{_BASE_URL}/files/{file_id}", params=params, timeout=timeout)
    if response.status_code >= 400:
        raise GoogleDriveError(f"Drive download failed for {file_id} with status {response.status_code}")
    content_type = response.headers.get("content-type", "image/jpeg").split(";")[0].strip()
    return response.content, content_type
