"""
Object Storage Client
Archives raw fetched HTML (and other blobs) in the tenant-scoped object store.

Every request carries x-tenant-id / x-user-id headers for multi-tenant
isolation. Failures are raised as StorageError subclasses; callers that treat
archiving as optional catch StorageError and carry on.
"""

import logging
from typing import Dict, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class StoredObject(BaseModel):
    """Metadata for an object held in the store"""

    model_config = ConfigDict(populate_by_name=True)

    object_id: str = Field(alias="objectId")
    file_name: str = Field(alias="fileName")
    size: int
    bucket: str
    last_modified: str = Field(alias="lastModified")
    created_at: str = Field(alias="createdAt")
    mime_type: Optional[str] = Field(default=None, alias="mimeType")
    checksum: Optional[str] = None
    etag: Optional[str] = None
    content_type: Optional[str] = Field(default=None, alias="contentType")
    metadata: Optional[Dict[str, str]] = None


class StorageError(Exception):
    """Base error for object storage operations"""


class StorageNotFoundError(StorageError):
    def __init__(self, object_id: str):
        self.object_id = object_id
        super().__init__(f"Object not found: {object_id}")


class StorageApiError(StorageError):
    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        self.message = message
        super().__init__(f"Storage API error {status_code}: {message}")


class StorageNetworkError(StorageError):
    pass


class ObjectStorageClient:
    """Client for the object storage HTTP API"""

    def __init__(
        self,
        base_url: str,
        tenant_id: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize the client.

        Args:
            base_url: API base URL (e.g. https://s3.audetic.link/api/v1)
            tenant_id: Tenant identifier sent with every request
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.tenant_id = tenant_id
        self.timeout = timeout
        self.transport = transport

    def _tenant_headers(self, user_id: str) -> Dict[str, str]:
        return {"x-tenant-id": self.tenant_id, "x-user-id": user_id}

    def _request(self, method: str, path: str, headers: Dict[str, str], content: Optional[bytes] = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                return client.request(method, url, headers=headers, content=content)
        except httpx.HTTPError as e:
            logger.error(f"[object_storage] {method} {url} failed: {e}")
            raise StorageNetworkError(str(e)) from e

    @staticmethod
    def _parse_file_response(response: httpx.Response) -> StoredObject:
        try:
            return StoredObject.model_validate(response.json()["file"])
        except (ValueError, KeyError, TypeError, ValidationError) as e:
            logger.error(f"[object_storage] Failed to parse file response: {e}")
            raise StorageApiError(500, f"Invalid response format: {e}") from e

    @staticmethod
    def _api_error(response: httpx.Response) -> StorageApiError:
        try:
            message = response.json().get("message") or response.text
        except ValueError:
            message = response.text
        return StorageApiError(response.status_code, message)

    def upload(self, content: bytes, file_name: str, mime_type: Optional[str], user_id: str) -> StoredObject:
        """
        Upload a file.

        Args:
            content: File bytes
            file_name: Name to store the file under
            mime_type: Optional MIME type
            user_id: Owning user (tenant isolation)

        Returns:
            StoredObject describing the stored file
        """
        headers = self._tenant_headers(user_id)
        headers["x-file-name"] = file_name
        headers["Content-Type"] = mime_type or "application/octet-stream"
        if mime_type:
            headers["x-mimetype"] = mime_type

        response = self._request("POST", "/files", headers, content=content)
        if response.status_code in (200, 201):
            stored = self._parse_file_response(response)
            logger.debug(f"[object_storage] Uploaded {file_name} as {stored.object_id} ({stored.size} bytes)")
            return stored
        raise self._api_error(response)

    def download(self, object_id: str, user_id: str) -> bytes:
        response = self._request("GET", f"/files/{object_id}", self._tenant_headers(user_id))
        if response.status_code == 200:
            return response.content
        if response.status_code == 404:
            raise StorageNotFoundError(object_id)
        raise self._api_error(response)

    def get_metadata(self, object_id: str, user_id: str) -> StoredObject:
        response = self._request("GET", f"/files/{object_id}/metadata", self._tenant_headers(user_id))
        if response.status_code == 200:
            return self._parse_file_response(response)
        if response.status_code == 404:
            raise StorageNotFoundError(object_id)
        raise self._api_error(response)

    def delete(self, object_id: str, user_id: str) -> StoredObject:
        response = self._request("DELETE", f"/files/{object_id}", self._tenant_headers(user_id))
        if response.status_code == 200:
            return self._parse_file_response(response)
        if response.status_code == 404:
            raise StorageNotFoundError(object_id)
        raise self._api_error(response)

    def find_by_checksum(self, checksum: str, user_id: str) -> Optional[StoredObject]:
        """Look up a file by SHA-256 checksum. Returns None when absent."""
        response = self._request("GET", f"/files/checksum/{checksum}", self._tenant_headers(user_id))
        if response.status_code == 200:
            return self._parse_file_response(response)
        if response.status_code == 404:
            return None
        raise self._api_error(response)
