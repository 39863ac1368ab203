"""Report lifecycle routes."""

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from sqlalchemy.orm import Session

from sitelog.db.dependencies import get_db
from sitelog.schemas.common import ApiResponse
from sitelog.schemas.report import (
    ExtractionAttemptRead,
    ExtractionAttemptsListResponse,
    FailReportRequest,
    ProcessReportRead,
    ReportCreateRequest,
    ReportRead,
    ReportsListResponse,
    ReprocessRequest,
)
from sitelog.schemas.resolution_event import ResolutionEventRead, ResolutionEventsListResponse
from sitelog.services.analytics import list_resolution_events
from sitelog.services.errors import InvalidTransitionError, ReportBusyError, ReportNotFoundError
from sitelog.services.extraction import list_attempts
from sitelog.services.pipeline import (
    archive_report,
    get_report,
    list_reports,
    mark_report_failed,
    process_report,
    register_report,
    reprocess_report,
)
from sitelog.services.storage import get_default_blob_store

router = APIRouter(prefix="/reports")

ReportIdParam = Path(..., min_length=1, max_length=128)


@router.post("", response_model=ApiResponse[ReportRead], status_code=201)
def create_report(payload: ReportCreateRequest, db: Session = Depends(get_db)) -> ApiResponse[ReportRead]:
    """Register a transcript as a pending report."""

    report = register_report(
        db,
        project_id=payload.project_id,
        project_name=payload.project_name,
        submitter_id=payload.submitter_id,
        report_date=payload.report_date,
        transcript_text=payload.transcript_text,
        transcript_blob_path=payload.transcript_path,
        submitted_at=payload.submitted_at,
        blob_store=get_default_blob_store(),
    )
    return ApiResponse(data=ReportRead.model_validate(report))


@router.get("", response_model=ApiResponse[ReportsListResponse])
def get_reports(
    project_id: str | None = Query(default=None),
    status: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
) -> ApiResponse[ReportsListResponse]:
    rows = list_reports(db, project_id=project_id, status=status, limit=limit)
    return ApiResponse(data=ReportsListResponse(items=[ReportRead.model_validate(row) for row in rows]))


@router.get("/{report_id}", response_model=ApiResponse[ReportRead])
def get_report_detail(report_id: str = ReportIdParam, db: Session = Depends(get_db)) -> ApiResponse[ReportRead]:
    try:
        report = get_report(db, report_id)
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return ApiResponse(data=ReportRead.model_validate(report))


@router.post("/{report_id}/process", response_model=ApiResponse[ProcessReportRead])
def process_report_route(report_id: str = ReportIdParam, db: Session = Depends(get_db)) -> ApiResponse[ProcessReportRead]:
    """Run the pipeline for one report; safe to call repeatedly."""

    try:
        result = process_report(db, report_id)
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (ReportBusyError, InvalidTransitionError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return ApiResponse(data=ProcessReportRead.model_validate(result))


@router.post("/{report_id}/reprocess", response_model=ApiResponse[ProcessReportRead])
def reprocess_report_route(
    payload: ReprocessRequest,
    report_id: str = ReportIdParam,
    db: Session = Depends(get_db),
) -> ApiResponse[ProcessReportRead]:
    """Discard the report's derived records and extract again without the cache."""

    try:
        result = reprocess_report(db, report_id, payload.reason)
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (ReportBusyError, InvalidTransitionError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return ApiResponse(data=ProcessReportRead.model_validate(result))


@router.post("/{report_id}/fail", response_model=ApiResponse[ReportRead])
def fail_report_route(
    payload: FailReportRequest,
    report_id: str = ReportIdParam,
    db: Session = Depends(get_db),
) -> ApiResponse[ReportRead]:
    try:
        report = mark_report_failed(db, report_id, payload.reason)
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return ApiResponse(data=ReportRead.model_validate(report))


@router.post("/{report_id}/archive", response_model=ApiResponse[ReportRead])
def archive_report_route(report_id: str = ReportIdParam, db: Session = Depends(get_db)) -> ApiResponse[ReportRead]:
    try:
        report = archive_report(db, report_id)
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return ApiResponse(data=ReportRead.model_validate(report))


@router.get("/{report_id}/attempts", response_model=ApiResponse[ExtractionAttemptsListResponse])
def get_report_attempts(
    report_id: str = ReportIdParam,
    db: Session = Depends(get_db),
) -> ApiResponse[ExtractionAttemptsListResponse]:
    try:
        get_report(db, report_id)
    except ReportNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    items = [ExtractionAttemptRead.model_validate(row) for row in list_attempts(db, report_id)]
    return ApiResponse(data=ExtractionAttemptsListResponse(items=items))


@router.get("/{report_id}/resolution-events", response_model=ApiResponse[ResolutionEventsListResponse])
def get_report_resolution_events(
    report_id: str = ReportIdParam,
    db: Session = Depends(get_db),
) -> ApiResponse[ResolutionEventsListResponse]:
    items = [ResolutionEventRead.model_validate(row) for row in list_resolution_events(db, report_id)]
    return ApiResponse(data=ResolutionEventsListResponse(items=items))
