"""Service-level exceptions shared by the pipeline, review and API layers."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for pipeline service errors."""


class ReportNotFoundError(PipelineError):
    """Raised when a report id does not exist."""

    def __init__(self, report_id: str) -> None:
        super().__init__(f"Report not found: {report_id}")
        self.report_id = report_id


class InvalidTransitionError(PipelineError):
    """Raised when a report status change is not allowed by the state machine."""

    def __init__(self, report_id: str, from_status: str, to_status: str) -> None:
        super().__init__(f"Report {report_id} cannot move from {from_status} to {to_status}")
        self.report_id = report_id
        self.from_status = from_status
        self.to_status = to_status


class StoreUnavailableError(PipelineError):
    """Transient storage fault; the orchestrator retries these with backoff."""


class ReportBusyError(PipelineError):
    """Raised when another worker holds an unexpired claim on the report."""


class ReviewDecisionError(PipelineError):
    """Raised for invalid review actions."""


class BlobNotFoundError(PipelineError):
    """Raised when a blob path does not exist in the store."""


class ClaimLostError(PipelineError):
    """Raised when a run no longer holds its claim, e.g. after operator cancellation."""

    def __init__(self, report_id: str) -> None:
        super().__init__(f"Report {report_id} is no longer claimed by this run")
        self.report_id = report_id
