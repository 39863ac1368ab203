"""Registry and rollup routes."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from sitelog.db.dependencies import get_db
from sitelog.schemas.analytics import PersonsListResponse, ProjectRollupsRead, VendorsListResponse
from sitelog.schemas.common import ApiResponse
from sitelog.services.aggregation import recompute_project_rollups
from sitelog.services.analytics import get_project_rollups, list_persons, list_vendors, parse_window_key

router = APIRouter()

LimitParam = Query(default=50, ge=1, le=500)
OffsetParam = Query(default=0, ge=0)


@router.get("/projects/{project_id}/rollups", response_model=ApiResponse[ProjectRollupsRead])
def get_rollups(
    project_id: str = Path(..., min_length=1),
    window: str = Query(default="all"),
    db: Session = Depends(get_db),
) -> ApiResponse[ProjectRollupsRead]:
    """Labor, vendor and constraint-cost rollups for ``all`` or a ``YYYY-MM`` window."""

    try:
        payload = get_project_rollups(db, project_id, window)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ApiResponse(data=payload)


@router.post("/projects/{project_id}/rollups/recompute", response_model=ApiResponse[ProjectRollupsRead])
def recompute_rollups(
    project_id: str = Path(..., min_length=1),
    window: str = Query(default="all"),
    db: Session = Depends(get_db),
) -> ApiResponse[ProjectRollupsRead]:
    try:
        rollup_window = parse_window_key(window)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    recompute_project_rollups(db, project_id, rollup_window)
    db.commit()
    return ApiResponse(data=get_project_rollups(db, project_id, rollup_window.key))


@router.get("/persons", response_model=ApiResponse[PersonsListResponse])
def get_persons(
    limit: int = LimitParam,
    offset: int = OffsetParam,
    q: str | None = Query(default=None),
    include_merged: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> ApiResponse[PersonsListResponse]:
    return ApiResponse(data=list_persons(db, limit=limit, offset=offset, query=q, include_merged=include_merged))


@router.get("/vendors", response_model=ApiResponse[VendorsListResponse])
def get_vendors(
    limit: int = LimitParam,
    offset: int = OffsetParam,
    q: str | None = Query(default=None),
    include_merged: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> ApiResponse[VendorsListResponse]:
    return ApiResponse(data=list_vendors(db, limit=limit, offset=offset, query=q, include_merged=include_merged))
