"""Blob store boundary.

Record versions only keep an opaque ``file_ref``; bytes live behind a
``BlobStore``. Downloads are handed out as short-lived signed URLs.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Protocol

import aiofiles
from jose import JWTError, jwt

from medilocker.config import settings
from medilocker.errors import AuthError, NotFoundError
from medilocker.utils.time import utcnow

logger = logging.getLogger("medilocker.blobs")

DOWNLOAD_TOKEN_ALGORITHM = "HS256"


@dataclass(frozen=True)
class BlobMetadata:
    file_name: str
    content_type: str | None
    owner_id: str


@dataclass(frozen=True)
class SignedURL:
    url: str
    expires_at: datetime


class BlobStore(Protocol):
    signer: DownloadSigner

    async def put(self, data: bytes, metadata: BlobMetadata) -> str:
        ...

    async def resolve(self, blob_ref: str) -> SignedURL:
        ...

    async def read(self, blob_ref: str) -> bytes:
        ...


class DownloadSigner:
    """Signs and checks the token embedded in download URLs."""

    def __init__(self, key: str, base_url: str, ttl_seconds: int) -> None:
        self.key = key
        self.base_url = base_url.rstrip("/")
        self.ttl = timedelta(seconds=ttl_seconds)

    def sign(self, blob_ref: str) -> SignedURL:
        expires_at = utcnow() + self.ttl
        token = jwt.encode(
            {"ref": blob_ref, "exp": expires_at},
            self.key,
            algorithm=DOWNLOAD_TOKEN_ALGORITHM,
        )
        return SignedURL(url=f"{self.base_url}/blobs/{blob_ref}?token={token}", expires_at=expires_at)

    def check(self, blob_ref: str, token: str) -> None:
        try:
            claims = jwt.decode(token, self.key, algorithms=[DOWNLOAD_TOKEN_ALGORITHM])
        except JWTError:
            raise AuthError("Download link is invalid or has expired") from None
        if claims.get("ref") != blob_ref:
            raise AuthError("Download link does not match this file")


class LocalBlobStore:
    """Filesystem-backed store for local-first deployments."""

    def __init__(self, root: Path, signer: DownloadSigner) -> None:
        self.root = Path(root)
        self.signer = signer

    async def put(self, data: bytes, metadata: BlobMetadata) -> str:
        digest = hashlib.sha256(data).hexdigest()[:16]
        suffix = Path(metadata.file_name).suffix.lower()
        blob_ref = f"{metadata.owner_id}/{uuid.uuid4().hex}-{digest}{suffix}"
        path = self.path_for(blob_ref)
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "wb") as f:
            await f.write(data)
        logger.info("Stored blob %s (%d bytes)", blob_ref, len(data))
        return blob_ref

    async def resolve(self, blob_ref: str) -> SignedURL:
        if not self.path_for(blob_ref).exists():
            raise NotFoundError("File not found in blob store")
        return self.signer.sign(blob_ref)

    async def read(self, blob_ref: str) -> bytes:
        path = self.path_for(blob_ref)
        if not path.exists():
            raise NotFoundError("File not found in blob store")
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    def path_for(self, blob_ref: str) -> Path:
        path = (self.root / blob_ref).resolve()
        if self.root.resolve() not in path.parents:
            raise NotFoundError("File not found in blob store")
        return path


class InMemoryBlobStore:
    """In-memory blob store for tests and local demos."""

    def __init__(self, signer: DownloadSigner | None = None) -> None:
        self.blobs: dict[str, tuple[bytes, BlobMetadata]] = {}
        self.signer = signer or DownloadSigner("test-blob-key", "http://testserver", 300)

    async def put(self, data: bytes, metadata: BlobMetadata) -> str:
        blob_ref = f"{metadata.owner_id}/{uuid.uuid4().hex}"
        self.blobs[blob_ref] = (data, metadata)
        return blob_ref

    async def resolve(self, blob_ref: str) -> SignedURL:
        if blob_ref not in self.blobs:
            raise NotFoundError("File not found in blob store")
        return self.signer.sign(blob_ref)

    async def read(self, blob_ref: str) -> bytes:
        if blob_ref not in self.blobs:
            raise NotFoundError("File not found in blob store")
        return self.blobs[blob_ref][0]


_blob_store: LocalBlobStore | None = None


def get_download_signer() -> DownloadSigner:
    return DownloadSigner(
        key=settings.blob_signing_key or "",
        base_url=f"{settings.public_base_url}{settings.api_prefix}",
        ttl_seconds=settings.download_url_ttl_seconds,
    )


def get_blob_store() -> BlobStore:
    """Get the process-wide blob store built from settings."""
    global _blob_store
    if _blob_store is None:
        _blob_store = LocalBlobStore(settings.blob_dir, get_download_signer())
    return _blob_store
