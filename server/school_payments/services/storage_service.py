"""
school_payments/services/storage_service.py
Blob storage for payment receipts and uploaded school files (Supabase Storage)
"""
from typing import List, Dict, Any, Optional
from supabase import Client
from school_payments.core.config import settings
from school_payments.core.exceptions import StorageError
from school_payments.db.supabase import get_supabase_admin_client
import logging

logger = logging.getLogger(__name__)


class BlobStorage:
    """Put/list/delete files by pathname in a public storage bucket"""

    def __init__(self, client: Optional[Client] = None, bucket: Optional[str] = None):
        self._client = client
        self.bucket = bucket or settings.STORAGE_BUCKET

    @property
    def client(self) -> Client:
        if self._client is None:
            self._client = get_supabase_admin_client()
        return self._client

    def _bucket(self):
        return self.client.storage.from_(self.bucket)

    def put(self, pathname: str, content: bytes, content_type: str) -> Dict[str, Any]:
        """
        Upload a file and return its public location

        Returns:
            dict: url, pathname and size of the stored file
        """
        try:
            self._bucket().upload(
                path=pathname,
                file=content,
                file_options={"content-type": content_type, "upsert": "false"}
            )
            url = self._bucket().get_public_url(pathname)
        except Exception as e:
            logger.error(f"Blob upload failed for {pathname}: {e}")
            raise StorageError(f"Failed to upload {pathname}: {str(e)}") from e

        logger.info(f"Stored {len(content)} bytes at {self.bucket}/{pathname}")
        return {"url": url, "pathname": pathname, "size": len(content)}

    def list(self, prefix: str = "") -> List[Dict[str, Any]]:
        """List the files directly under a folder prefix"""
        folder = prefix.strip("/")
        try:
            entries = self._bucket().list(folder)
        except Exception as e:
            logger.error(f"Blob listing failed for {folder!r}: {e}")
            raise StorageError(f"Failed to list {folder!r}: {str(e)}") from e

        files = []
        for entry in entries:
            # Sub-folders come back without an id
            if entry.get("id") is None:
                continue
            pathname = f"{folder}/{entry['name']}" if folder else entry["name"]
            metadata = entry.get("metadata") or {}
            files.append({
                "url": self._bucket().get_public_url(pathname),
                "pathname": pathname,
                "size": metadata.get("size"),
                "uploaded_at": entry.get("created_at"),
            })
        return files

    def delete(self, pathname: str) -> None:
        try:
            self._bucket().remove([pathname])
        except Exception as e:
            logger.error(f"Blob delete failed for {pathname}: {e}")
            raise StorageError(f"Failed to delete {pathname}: {str(e)}") from e
        logger.info(f"Deleted {self.bucket}/{pathname}")
