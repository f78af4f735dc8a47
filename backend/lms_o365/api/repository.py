"""File repository routes for the LMS file picker."""

from collections.abc import AsyncGenerator

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile, status
from fastapi.responses import RedirectResponse

from lms_o365.api.deps import CurrentUser, DbSession
from lms_o365.core.exceptions import (
    AccessDeniedError,
    BadClientTypeError,
    BadPathError,
    DownloadError,
    FileReferenceNotFoundError,
    O365RequiredError,
    RepositoryError,
    RepositoryNotConfiguredError,
)
from lms_o365.core.logging import get_logger
from lms_o365.core.o365.exceptions import O365ApiError
from lms_o365.core.rate_limit import limiter, repository_limit, upload_limit
from lms_o365.repository.office365 import Office365Repository
from lms_o365.schemas.repository import (
    DownloadedFile,
    FileReferenceRequest,
    FileReferenceResponse,
    RepositoryListing,
    UploadResult,
)

logger = get_logger(__name__)

router = APIRouter(prefix="/repository", tags=["repository"])

_ERROR_STATUS: dict[type[RepositoryError], int] = {
    BadPathError: status.HTTP_400_BAD_REQUEST,
    BadClientTypeError: status.HTTP_400_BAD_REQUEST,
    AccessDeniedError: status.HTTP_403_FORBIDDEN,
    O365RequiredError: status.HTTP_403_FORBIDDEN,
    FileReferenceNotFoundError: status.HTTP_404_NOT_FOUND,
    DownloadError: status.HTTP_502_BAD_GATEWAY,
    RepositoryNotConfiguredError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def repository_http_error(error: RepositoryError | O365ApiError) -> HTTPException:
    """Map a repository or REST client failure to an HTTP error."""
    if isinstance(error, O365ApiError):
        logger.warning("repository_api_error", status_code=error.status_code, error=str(error))
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(error))

    status_code = _ERROR_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST)
    return HTTPException(
        status_code=status_code,
        detail={"error": error.error_code, "message": str(error)},
    )


async def get_repository(db: DbSession, current_user: CurrentUser) -> AsyncGenerator[Office365Repository, None]:
    """Repository for the current user, closing its API clients afterwards."""
    async with Office365Repository(db, current_user) as repository:
        yield repository


@router.get("/listing", response_model=RepositoryListing, response_model_by_alias=True)
@limiter.limit(repository_limit)
async def get_listing(
    request: Request,
    path: str = Query(""),
    client_id: str = Query(""),
    course_id: int | None = Query(None),
    repository: Office365Repository = Depends(get_repository),
) -> RepositoryListing:
    """List a repository folder, or describe an upload target."""
    try:
        return await repository.get_listing(path, client_id, course_id)
    except (RepositoryError, O365ApiError) as e:
        raise repository_http_error(e) from e


@router.post("/upload", response_model=UploadResult, status_code=status.HTTP_201_CREATED)
@limiter.limit(upload_limit)
async def upload_file(
    request: Request,
    file: UploadFile = File(...),
    client_id: str = Form(""),
    repository: Office365Repository = Depends(get_repository),
) -> UploadResult:
    """Upload into the folder the picker instance last listed."""
    content = await file.read()
    try:
        return await repository.upload(file.filename or "file", content, client_id)
    except (RepositoryError, O365ApiError) as e:
        raise repository_http_error(e) from e


@router.get("/file", response_model=DownloadedFile)
@limiter.limit(repository_limit)
async def get_file(
    request: Request,
    reference: str = Query(...),
    filename: str = Query(""),
    repository: Office365Repository = Depends(get_repository),
) -> DownloadedFile:
    """Download a referenced file into local storage."""
    try:
        return await repository.get_file(reference, filename)
    except (RepositoryError, O365ApiError) as e:
        raise repository_http_error(e) from e


@router.get("/send")
@limiter.limit(repository_limit)
async def send_file(
    request: Request,
    reference: str = Query(...),
    forcedownload: bool = Query(False),
    repository: Office365Repository = Depends(get_repository),
) -> RedirectResponse:
    """Redirect to the referenced file, embedded where possible.

    The file is read with the signed-in user's own Office 365 token.
    """
    try:
        url = await repository.send_file(reference, forcedownload)
    except (RepositoryError, O365ApiError) as e:
        raise repository_http_error(e) from e
    return RedirectResponse(url=url, status_code=status.HTTP_302_FOUND)


@router.post("/reference", response_model=FileReferenceResponse)
@limiter.limit(repository_limit)
async def get_file_reference(
    request: Request,
    body: FileReferenceRequest,
    repository: Office365Repository = Depends(get_repository),
) -> FileReferenceResponse:
    """Turn a listing ``source`` into a stored file reference."""
    reference = await repository.get_file_reference(body.source)
    return FileReferenceResponse(reference=reference)
