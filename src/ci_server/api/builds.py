"""Build history endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ci_server.api.dependencies import get_ledger
from ci_server.schemas.builds import BuildRecord, BuildSummary
from ci_server.services.build_ledger import BuildLedger, LedgerCorruptionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/builds", tags=["builds"])


@router.get("", response_model=list[BuildSummary], response_model_by_alias=True)
def list_builds(ledger: BuildLedger = Depends(get_ledger)) -> list[BuildSummary]:
    """List every recorded build, newest first."""
    try:
        return ledger.list_summaries()
    except LedgerCorruptionError as e:
        logger.error("Build history unreadable", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Build history is unreadable",
        )


@router.get("/{build_id}", response_model=BuildRecord, response_model_by_alias=True)
def get_build(build_id: str, ledger: BuildLedger = Depends(get_ledger)) -> BuildRecord:
    """Full record of one build, including its logs."""
    try:
        record = ledger.get_by_id(build_id)
    except LedgerCorruptionError as e:
        logger.error("Build history unreadable", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Build history is unreadable",
        )

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Build '{build_id}' not found",
        )
    return record
