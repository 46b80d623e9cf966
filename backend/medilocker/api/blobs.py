import mimetypes

from fastapi import APIRouter, Depends, Query, Response

from medilocker.services.blob_store import BlobStore, get_blob_store

router = APIRouter(prefix="/blobs", tags=["Blobs"])


@router.get("/{blob_ref:path}")
async def download_blob(
    blob_ref: str,
    token: str = Query(..., description="Signed download token"),
    store: BlobStore = Depends(get_blob_store),
):
    """Serve a blob to whoever holds a valid signed link. No bearer token needed."""
    store.signer.check(blob_ref, token)
    data = await store.read(blob_ref)
    media_type = mimetypes.guess_type(blob_ref)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)
