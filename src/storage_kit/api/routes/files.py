"""
File Storage API Routes

RESTful endpoints over the storage manager.
"""

import logging
from pathlib import PurePosixPath
from typing import Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    UploadFile,
)
from fastapi.responses import StreamingResponse

from storage_kit.core.linking import EntityReference
from storage_kit.core.pipeline import DEFAULT_ENTITY_TYPE
from storage_kit.core.storage_manager import StorageManager
from storage_kit.core.uploads import FormUpload, guess_content_type
from storage_kit.exceptions import (
    StorageConfigurationError,
    StorageError,
    StorageNotFoundError,
    StorageSecurityError,
    StorageValidationError,
)
from storage_kit.infrastructure.storage import archive_location
from storage_kit.models import (
    ArchiveResponse,
    DeleteResponse,
    ProviderListResponse,
    ProviderResponse,
    UpdateOptionsRequest,
    UploadResponse,
    UrlResponse,
)

router = APIRouter(prefix="/api/v1", tags=["files"])
logger = logging.getLogger(__name__)


# Dependency for Storage Manager
def get_storage_manager(request: Request) -> StorageManager:
    """Dependency for getting the application's StorageManager"""
    return request.app.state.storage_manager


def _http_error(e: StorageError, action: str) -> HTTPException:
    """Map a storage error onto an HTTP status"""
    if isinstance(e, (StorageValidationError, StorageSecurityError)):
        logger.warning(f"{action} rejected: {e}")
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, StorageNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, StorageConfigurationError):
        logger.error(f"{action} failed, storage misconfigured: {e}")
        return HTTPException(status_code=503, detail=str(e))

    logger.error(f"{action} failed: {e}")
    return HTTPException(status_code=500, detail=f"{action} failed: {str(e)}")


@router.post(
    "/files",
    response_model=UploadResponse,
    status_code=201,
    summary="Upload File",
    description="""
Upload a file under a category and, for images, derive resized renditions.

**Workflow**:
1. Client sends multipart/form-data request with file and category
2. Service validates file size and extension
3. Picks the requested provider (or the default one)
4. Streams the file to the backend under `{category}/{entity_type}/{Images|Others}/{id}-{name}`
5. For images, stores compressed, thumbnail and custom-size JPEG renditions
6. Returns the primary entry and its variants

**Request Format**:
- Content-Type: multipart/form-data
- file: File upload (required)
- category: Logical partition, e.g. "Users" (required)
- entity_type: Entity tag used in the address (default "General")
- entity_id: Optional id of the entity the file belongs to; the file and its renditions are linked to it under the entity_type (or category) name
- generate_variants: Derive image renditions (default true)
- provider_id: Target provider (default provider when omitted)
    """,
    responses={
        201: {"description": "File uploaded successfully"},
        400: {"description": "File validation failed or category missing"},
        404: {"description": "Provider not found"},
        503: {"description": "Storage is not configured"},
        500: {"description": "Upload failed due to a storage error"}
    }
)
async def upload_file(
    file: UploadFile = File(..., description="File to upload"),
    category: str = Form(..., description="Logical partition"),
    entity_type: Optional[str] = Form(None, description="Entity tag used in the address"),
    entity_id: Optional[str] = Form(None, description="Id of the owning entity"),
    generate_variants: bool = Form(True, description="Derive image renditions"),
    provider_id: Optional[str] = Form(None, description="Target provider id"),
    manager: StorageManager = Depends(get_storage_manager)
) -> UploadResponse:
    """Upload a file"""
    try:
        descriptor = manager.get_provider(provider_id)
        entity = EntityReference(entity_name=entity_type or category, id=entity_id) if entity_id else None
        primary, variants = await manager.upload(
            FormUpload(file),
            category,
            entity_type=entity_type or DEFAULT_ENTITY_TYPE,
            entity=entity,
            generate_variants=generate_variants,
            provider_id=descriptor.id
        )

    except StorageError as e:
        raise _http_error(e, "Upload")

    return UploadResponse(file=primary, variants=variants, provider_id=descriptor.id)


@router.get(
    "/files/content",
    summary="Download File",
    description="""
Stream the content of a stored file.

**Response Format**:
- Content-Type: guessed from the location's extension
- Content-Disposition: attachment; filename={{stored file name}}
- Body: Binary file content (streamed)
    """,
    responses={
        200: {"description": "File download stream started successfully"},
        400: {"description": "Location escapes the storage root"},
        404: {"description": "File not found"},
        500: {"description": "Download failed due to a storage error"}
    }
)
async def download_file(
    location: str = Query(..., description="Location returned at upload"),
    provider_id: Optional[str] = Query(None, description="Provider id"),
    manager: StorageManager = Depends(get_storage_manager)
):
    """Download a file"""
    try:
        stream = await manager.open_stream(location, provider_id=provider_id)
    except StorageError as e:
        raise _http_error(e, "Download")

    filename = PurePosixPath(location).name
    return StreamingResponse(
        stream,
        media_type=guess_content_type(filename),
        headers={"Content-Disposition": f"attachment; filename={filename}"}
    )


@router.delete(
    "/files",
    response_model=DeleteResponse,
    summary="Delete File",
    description="""
Delete a stored file. Renditions are separate files and must be deleted by
their own locations.

Returns `deleted: false` when nothing was stored at the location.
    """,
    responses={
        200: {"description": "Delete processed"},
        400: {"description": "Location escapes the storage root"},
        500: {"description": "Delete failed due to a storage error"}
    }
)
async def delete_file(
    location: str = Query(..., description="Location returned at upload"),
    provider_id: Optional[str] = Query(None, description="Provider id"),
    manager: StorageManager = Depends(get_storage_manager)
) -> DeleteResponse:
    """Delete a file"""
    try:
        deleted = await manager.delete(location, provider_id=provider_id)
    except StorageError as e:
        raise _http_error(e, "Delete")

    return DeleteResponse(location=location, deleted=deleted)


@router.post(
    "/files/archive",
    response_model=ArchiveResponse,
    summary="Archive File",
    description="""
Move a stored file into the provider's archive area, `archive/{location}`.
An earlier archived copy at that address is replaced. The in-memory provider
flags the file as archived in place instead of moving it.

Returns `moved: false` when nothing was stored at the location.
    """,
    responses={
        200: {"description": "Archive processed"},
        400: {"description": "Location escapes the storage root"},
        500: {"description": "Archive failed due to a storage error"}
    }
)
async def archive_file(
    location: str = Query(..., description="Location returned at upload"),
    provider_id: Optional[str] = Query(None, description="Provider id"),
    manager: StorageManager = Depends(get_storage_manager)
) -> ArchiveResponse:
    """Archive a file"""
    try:
        moved = await manager.archive(location, provider_id=provider_id)
    except StorageError as e:
        raise _http_error(e, "Archive")

    return ArchiveResponse(location=location, archive_location=archive_location(location), moved=moved)


@router.post(
    "/files/unarchive",
    response_model=ArchiveResponse,
    summary="Restore Archived File",
    description="""
Move an archived file back to the location it was archived from.

Returns `moved: false` when no archived copy exists.
    """,
    responses={
        200: {"description": "Restore processed"},
        400: {"description": "Location escapes the storage root"},
        500: {"description": "Restore failed due to a storage error"}
    }
)
async def unarchive_file(
    location: str = Query(..., description="Location the file was archived from"),
    provider_id: Optional[str] = Query(None, description="Provider id"),
    manager: StorageManager = Depends(get_storage_manager)
) -> ArchiveResponse:
    """Restore an archived file"""
    try:
        moved = await manager.unarchive(location, provider_id=provider_id)
    except StorageError as e:
        raise _http_error(e, "Unarchive")

    return ArchiveResponse(location=location, archive_location=archive_location(location), moved=moved)


@router.get(
    "/files/url",
    response_model=UrlResponse,
    summary="Get File URL",
    description="""
Return a URL the client can fetch the file from directly: a presigned GET URL
for S3, the public base URL for local storage.
    """,
    responses={
        200: {"description": "URL generated"},
        400: {"description": "Location escapes the storage root"},
        500: {"description": "URL generation failed"}
    }
)
async def get_file_url(
    location: str = Query(..., description="Location returned at upload"),
    expiration: Optional[int] = Query(None, gt=0, description="URL lifetime in seconds"),
    provider_id: Optional[str] = Query(None, description="Provider id"),
    manager: StorageManager = Depends(get_storage_manager)
) -> UrlResponse:
    """Get a direct-access URL"""
    try:
        url = await manager.generate_url(location, expiration=expiration, provider_id=provider_id)
    except StorageError as e:
        raise _http_error(e, "URL generation")

    return UrlResponse(location=location, url=url, expires_in=expiration)


@router.get(
    "/providers",
    response_model=ProviderListResponse,
    summary="List Storage Providers",
    description="List registered storage providers. Options payloads are not exposed.",
)
async def list_providers(
    manager: StorageManager = Depends(get_storage_manager)
) -> ProviderListResponse:
    """List storage providers"""
    providers = [ProviderResponse.from_descriptor(d) for d in manager.list_providers()]
    return ProviderListResponse(providers=providers, total=len(providers))


@router.put(
    "/providers/{provider_id}/options",
    response_model=ProviderResponse,
    summary="Update Provider Options",
    description="""
Replace a provider's options at runtime. The payload is validated against the
options model of the provider's backend type; the live executor picks the new
options up before its next operation.
    """,
    responses={
        200: {"description": "Options updated"},
        404: {"description": "Provider not found"},
        400: {"description": "Options failed validation"}
    }
)
async def update_provider_options(
    provider_id: str,
    request: UpdateOptionsRequest,
    manager: StorageManager = Depends(get_storage_manager)
) -> ProviderResponse:
    """Update provider options"""
    try:
        descriptor = manager.update_provider_options(provider_id, request.options)
    except StorageError as e:
        raise _http_error(e, "Options update")

    logger.info(f"Options updated for provider {descriptor}")
    return ProviderResponse.from_descriptor(descriptor)
