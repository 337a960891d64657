"""GitHub webhook handler.

Receives GitHub push events, hands them to the build orchestrator and
answers with the pipeline outcome.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from ci_server.api.dependencies import get_orchestrator
from ci_server.core.logging import delivery_id_ctx
from ci_server.pipeline.orchestrator import BuildOrchestrator, PipelineState
from ci_server.schemas.builds import WebhookResponse
from ci_server.services.build_ledger import LedgerCorruptionError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/github", response_model=WebhookResponse)
async def github_webhook(
    request: Request,
    orchestrator: BuildOrchestrator = Depends(get_orchestrator),
    x_hub_signature_256: Annotated[str | None, Header()] = None,
    x_github_event: Annotated[str | None, Header()] = None,
    x_github_delivery: Annotated[str | None, Header()] = None,
) -> WebhookResponse:
    """
    GitHub webhook handler for push events.

    The pipeline blocks on git and the build tool, so it runs on a worker
    thread; each delivery gets its own.

    Returns:
        - 200: Build ran (status success/failure) or payload ignored
        - 401: Invalid signature
        - 500: Build ran but could not be recorded
    """
    delivery_id_ctx.set(x_github_delivery)
    body = await request.body()

    logger.info(
        "Received GitHub webhook",
        extra={"event_type": x_github_event, "delivery_id": x_github_delivery},
    )

    try:
        outcome = await run_in_threadpool(
            orchestrator.handle_delivery, body, x_hub_signature_256, x_github_event
        )
    except (LedgerCorruptionError, OSError, ValueError) as e:
        logger.error("Failed to record build", extra={"error": str(e)}, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Build could not be recorded",
        )

    if outcome.state is PipelineState.REJECTED:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Signature verification failed",
        )

    if outcome.record is None:
        return WebhookResponse(status=outcome.state.value, message=outcome.message)

    record = outcome.record
    return WebhookResponse(
        status=record.status.value,
        message=outcome.message,
        build_id=record.id,
        url=record.url,
    )
