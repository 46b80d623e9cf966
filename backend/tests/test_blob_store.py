import pytest

from medilocker.errors import AuthError, NotFoundError
from medilocker.services.blob_store import BlobMetadata, DownloadSigner, LocalBlobStore


@pytest.fixture()
def signer():
    return DownloadSigner("blob-test-key", "http://testserver/api/v1/", 300)


@pytest.fixture()
def store(tmp_path, signer):
    return LocalBlobStore(tmp_path / "blobs", signer)


@pytest.mark.anyio
async def test_put_then_read_back(store):
    ref = await store.put(b"%PDF-1.7 result", BlobMetadata("Lab Result.PDF", "application/pdf", "patient-1"))

    assert ref.startswith("patient-1/")
    assert ref.endswith(".pdf")
    assert store.path_for(ref).exists()
    assert await store.read(ref) == b"%PDF-1.7 result"


@pytest.mark.anyio
async def test_resolve_signs_a_download_url(store, signer):
    ref = await store.put(b"x", BlobMetadata("scan.png", "image/png", "patient-1"))

    signed = await store.resolve(ref)

    assert signed.url.startswith(f"http://testserver/api/v1/blobs/{ref}?token=")
    token = signed.url.split("token=", 1)[1]
    signer.check(ref, token)


@pytest.mark.anyio
async def test_unknown_blob_is_not_found(store):
    with pytest.raises(NotFoundError):
        await store.resolve("patient-1/missing.pdf")
    with pytest.raises(NotFoundError):
        await store.read("patient-1/missing.pdf")


@pytest.mark.parametrize("ref", ["../outside.txt", "patient-1/../../etc/passwd", ""])
def test_refs_cannot_escape_the_root(store, ref):
    with pytest.raises(NotFoundError):
        store.path_for(ref)


def test_token_for_another_blob_is_rejected(signer):
    token = signer.sign("patient-1/a.pdf").url.split("token=", 1)[1]

    with pytest.raises(AuthError, match="does not match"):
        signer.check("patient-2/b.pdf", token)


def test_tampered_or_expired_token_is_rejected(signer):
    with pytest.raises(AuthError):
        signer.check("patient-1/a.pdf", "not-a-token")

    expired = DownloadSigner("blob-test-key", "http://testserver", ttl_seconds=-5)
    token = expired.sign("patient-1/a.pdf").url.split("token=", 1)[1]
    with pytest.raises(AuthError, match="expired"):
        signer.check("patient-1/a.pdf", token)
