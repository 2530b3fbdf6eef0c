"""Archive API router."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from storage_archiver.api.v1.deps import get_archiver
from storage_archiver.api.v1.schemas.archives import ArchiveCreate, ArchiveOut
from storage_archiver.common.config import get_settings
from storage_archiver.common.errors import ArchiverError
from storage_archiver.services.archiver import Archiver

router = APIRouter()


@router.post(
    "/archives",
    response_model=ArchiveOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create archive",
    description=(
        "Stream every file under source_uri into a ZIP archive written to "
        "target_uri and return its access URL."
    ),
)
def create_archive(
    payload: ArchiveCreate,
    archiver: Archiver = Depends(get_archiver),
) -> ArchiveOut:
    level = payload.compression_level
    if level is None:
        level = get_settings().COMPRESSION_LEVEL
    try:
        result = archiver.archive(payload.source_uri, payload.target_uri, level)
    except ArchiverError as exc:
        raise HTTPException(
            status_code=exc.status_code,
            detail={"message": exc.message, "error_code": exc.code.lower()},
        ) from exc
    return ArchiveOut.from_result(result)
