import logging
import threading

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import StreamingResponse

from app.api.v1.schemas import RestyleRequest
from app.models.pages import BoundaryOverride
from app.services.accounts import RESTYLE_FEATURE, AccountDirectory, get_account_service
from app.services.boundaries import index_overrides
from app.services.orchestrator import RestyleJob, RestyleOrchestrator
from app.services.pages import get_image_fetcher, get_image_storage, get_page_store
from app.services.progress import SSE_HEADERS, SSE_MEDIA_TYPE, QueueEventSink

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1")


@router.get("/health", tags=["health"])
async def health_check() -> dict:
    """API v1 health check endpoint."""
    return {"status": "ok", "api_version": "v1"}


def get_current_user(
    authorization: str | None = Header(default=None),
    accounts: AccountDirectory = Depends(get_account_service),
) -> str:
    """Resolve the `Authorization: Bearer <token>` header to a user id."""
    scheme, _, token = (authorization or "").partition(" ")
    user_id = accounts.resolve_token(token.strip()) if scheme.lower() == "bearer" and token.strip() else None
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    return user_id


def get_orchestrator(
    pages=Depends(get_page_store),
    fetcher=Depends(get_image_fetcher),
    storage=Depends(get_image_storage),
    accounts=Depends(get_account_service),
) -> RestyleOrchestrator:
    return RestyleOrchestrator(pages=pages, fetcher=fetcher, storage=storage, accounts=accounts)


@router.post(
    "/pages/{page_id}/restyle",
    tags=["restyle"],
    summary="Restyle every section image of a page",
    response_class=StreamingResponse,
    responses={
        200: {"content": {SSE_MEDIA_TYPE: {}}, "description": "Progress event stream."},
        400: {"description": "Invalid page id or request body."},
        401: {"description": "Missing or invalid credentials."},
        402: {"description": "A subscription is required."},
        403: {"description": "The plan does not include restyling."},
        429: {"description": "No remaining generation quota."},
    },
)
def restyle_page(
    page_id: str,
    body: RestyleRequest,
    user_id: str = Depends(get_current_user),
    accounts: AccountDirectory = Depends(get_account_service),
    orchestrator: RestyleOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    """
    Start a restyle job and stream its progress as server-sent events.

    Entitlement and quota are checked before the stream opens and fail with
    ordinary HTTP errors. Once streaming, every outcome (including a missing
    or foreign page) arrives as a `data: <json>` frame; the stream ends after
    exactly one `complete` or `error` event.
    """
    try:
        numeric_page_id = int(page_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid page ID")

    access = accounts.check_feature_access(user_id, RESTYLE_FEATURE)
    if not access.allowed:
        raise HTTPException(
            status_code=(
                status.HTTP_402_PAYMENT_REQUIRED if access.need_subscription else status.HTTP_403_FORBIDDEN
            ),
            detail=access.reason,
        )

    quota = accounts.check_quota(user_id)
    if not quota.allowed:
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=quota.reason)

    job = RestyleJob(
        page_id=numeric_page_id,
        user_id=user_id,
        edit_options=body.edit_options,
        design_definition=body.design_definition,
        include_mobile=body.include_mobile,
        overrides=index_overrides(
            BoundaryOverride(
                section_id=boundary.id,
                offset_top=boundary.boundary_offset_top,
                offset_bottom=boundary.boundary_offset_bottom,
            )
            for boundary in body.section_boundaries
        ),
    )

    # The job owns its thread; a client that disconnects does not stop it.
    sink = QueueEventSink()
    worker = threading.Thread(
        target=orchestrator.run,
        args=(job, sink),
        name=f"restyle-page-{numeric_page_id}",
        daemon=True,
    )
    worker.start()
    logger.info("Restyle job started for page %s by %s", numeric_page_id, user_id)

    return StreamingResponse(sink.frames(), media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS)
