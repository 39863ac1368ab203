"""Review queue routes."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from sitelog.db.dependencies import get_db
from sitelog.schemas.common import ApiResponse
from sitelog.schemas.review import AutoConfirmResult, ReviewDecisionRequest, ReviewOutcomeRead, ReviewQueueRead
from sitelog.services.errors import ReviewDecisionError
from sitelog.services.review import auto_confirm_stale_reviews, list_review_queue, resolve_pending_review

router = APIRouter(prefix="/review")


@router.get("", response_model=ApiResponse[ReviewQueueRead])
def get_review_queue(
    project_id: str | None = Query(default=None),
    db: Session = Depends(get_db),
) -> ApiResponse[ReviewQueueRead]:
    """List flagged entity matches and records awaiting a reviewer."""

    return ApiResponse(data=ReviewQueueRead.model_validate(list_review_queue(db, project_id)))


@router.post("/entities/{entity_id}", response_model=ApiResponse[ReviewOutcomeRead])
def decide_review(
    payload: ReviewDecisionRequest,
    entity_id: str = Path(..., min_length=1, max_length=64),
    db: Session = Depends(get_db),
) -> ApiResponse[ReviewOutcomeRead]:
    try:
        outcome = resolve_pending_review(
            db,
            entity_id,
            payload.decision,
            target_entity_id=payload.target_entity_id,
            record_id=payload.record_id,
            reviewer=payload.reviewer,
            note=payload.note,
        )
    except ReviewDecisionError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ApiResponse(data=ReviewOutcomeRead.model_validate(outcome))


@router.post("/auto-confirm", response_model=ApiResponse[AutoConfirmResult])
def run_auto_confirm(db: Session = Depends(get_db)) -> ApiResponse[AutoConfirmResult]:
    """Apply the stale-review terminal policy now."""

    return ApiResponse(data=AutoConfirmResult(confirmed=auto_confirm_stale_reviews(db)))
