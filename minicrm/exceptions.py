"""
RFC 7807 Problem Details exception handling.

Provides standardized error responses for the API following the
"Problem Details for HTTP APIs" specification.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel, Field
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import traceback
import uuid
from datetime import datetime, timezone

from minicrm.middleware.correlation import get_request_id

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://minicrm.dev/problems"


def _get_trace_id() -> str:
    """Get trace ID from correlation context or generate a new one."""
    request_id = get_request_id()
    if request_id and request_id != "unknown":
        return request_id
    return str(uuid.uuid4())[:12]


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ErrorCode(str, Enum):
    """Standardized error codes for the CRM API."""

    # Authentication
    UNAUTHORIZED = "AUTH_001"

    # Validation
    VALIDATION_ERROR = "VAL_001"
    INVALID_RULES = "VAL_002"

    # Resource
    NOT_FOUND = "RES_001"

    # Dependencies
    DEPENDENCY_ERROR = "EXT_001"
    QUEUE_ERROR = "EXT_002"
    DATABASE_ERROR = "EXT_003"

    # Server
    INTERNAL_ERROR = "SRV_001"


class ProblemDetail(BaseModel):
    """
    RFC 7807 Problem Details response schema.

    Attributes:
        type: URI reference identifying the problem type
        title: Short, human-readable summary
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        instance: URI reference identifying this specific occurrence
        code: Machine-readable error code for client handling
        timestamp: ISO 8601 timestamp of when the error occurred
        trace_id: Unique identifier for tracing in logs
        errors: List of field-level validation errors
    """

    type: str = Field(default="about:blank")
    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    code: str
    timestamp: str
    trace_id: str
    errors: Optional[List[Dict[str, Any]]] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": f"{PROBLEM_TYPE_BASE}/res-001",
                "title": "Not Found",
                "status": 404,
                "detail": "Customer with ID c-123 was not found",
                "instance": "/api/customers/c-123",
                "code": "RES_001",
                "timestamp": "2026-01-29T10:30:00Z",
                "trace_id": "abc123def456",
            }
        }
    }


class CRMException(HTTPException):
    """
    Base exception for the CRM API with RFC 7807 support.

    Usage:
        raise CRMException(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail="Customer not found",
        )
    """

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        title: Optional[str] = None,
        instance: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.title = title or self._default_title(status_code)
        self.instance = instance
        self.errors = errors
        self.trace_id = _get_trace_id()
        self.timestamp = _utc_timestamp()

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    @staticmethod
    def _default_title(status_code: int) -> str:
        """Get default title based on status code."""
        titles = {
            400: "Bad Request",
            401: "Unauthorized",
            404: "Not Found",
            500: "Internal Server Error",
            503: "Service Unavailable",
        }
        return titles.get(status_code, "Error")

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        """Convert to RFC 7807 ProblemDetail."""
        return ProblemDetail(
            type=f"{PROBLEM_TYPE_BASE}/{self.code.value.lower().replace('_', '-')}",
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=self.instance or instance,
            code=self.code.value,
            timestamp=self.timestamp,
            trace_id=self.trace_id,
            errors=self.errors,
        )


# Convenience exception classes

class ValidationError(CRMException):
    """User-correctable input error (400). Never retried."""

    def __init__(
        self,
        detail: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            status_code=400,
            code=code,
            detail=detail,
            errors=errors,
        )


class NotFoundError(CRMException):
    """Resource not found (404)."""

    def __init__(
        self,
        resource: str,
        resource_id: str,
        instance: Optional[str] = None
    ):
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=f"{resource} with ID {resource_id} was not found",
            instance=instance,
        )


class DependencyError(CRMException):
    """Queue or store unreachable (500). Logged, not retried in-request."""

    def __init__(self, service: str, detail: str, code: ErrorCode = ErrorCode.DEPENDENCY_ERROR):
        self.service = service
        super().__init__(
            status_code=500,
            code=code,
            detail=f"{service} unavailable: {detail}",
        )


class UnauthorizedError(CRMException):
    """Authentication required (401)."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=401,
            code=ErrorCode.UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


# Exception handlers for FastAPI

def create_problem_response(
    status_code: int,
    code: ErrorCode,
    detail: str,
    request: Request,
    errors: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
    allowed_origins: Optional[List[str]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    """Create a RFC 7807 compliant JSON response with CORS headers."""
    problem = ProblemDetail(
        type=f"{PROBLEM_TYPE_BASE}/{code.value.lower().replace('_', '-')}",
        title=CRMException._default_title(status_code),
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        code=code.value,
        timestamp=_utc_timestamp(),
        trace_id=trace_id or _get_trace_id(),
        errors=errors,
    )
    return _problem_json(problem, request, allowed_origins, headers)


def _problem_json(
    problem: ProblemDetail,
    request: Request,
    allowed_origins: Optional[List[str]],
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    response = JSONResponse(
        status_code=problem.status,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
        headers=headers,
    )

    # Error responses bypass CORSMiddleware, so echo the origin here
    if allowed_origins:
        origin = request.headers.get("origin", "")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"

    return response


def create_exception_handlers(allowed_origins: List[str]):
    """
    Create exception handlers with configured allowed origins for CORS.

    Usage in main.py:
        handlers = create_exception_handlers(allowed_origins)
        app.add_exception_handler(CRMException, handlers["crm"])
        app.add_exception_handler(RequestValidationError, handlers["validation"])
        app.add_exception_handler(Exception, handlers["generic"])
    """

    async def handle_crm_exception(request: Request, exc: CRMException) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"CRMException: {exc.code.value} - {exc.detail}",
            extra={
                "trace_id": exc.trace_id,
                "status_code": exc.status_code,
                "path": request.url.path,
            },
        )
        problem = exc.to_problem_detail(instance=str(request.url.path))
        return _problem_json(problem, request, allowed_origins, exc.headers)

    async def handle_http_exception(
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle standard HTTPException with RFC 7807 response."""
        code_map = {
            400: ErrorCode.VALIDATION_ERROR,
            401: ErrorCode.UNAUTHORIZED,
            404: ErrorCode.NOT_FOUND,
        }
        code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)

        return create_problem_response(
            status_code=exc.status_code,
            code=code,
            detail=str(exc.detail),
            request=request,
            allowed_origins=allowed_origins,
            headers=getattr(exc, "headers", None),
        )

    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Handle request body parsing errors as a 400 with field-level details."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        return create_problem_response(
            status_code=400,
            code=ErrorCode.VALIDATION_ERROR,
            detail="Request validation failed",
            request=request,
            errors=errors,
            allowed_origins=allowed_origins,
        )

    async def handle_generic_exception(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions with RFC 7807 response."""
        trace_id = _get_trace_id()

        logger.error(
            f"Unhandled exception: {exc}",
            extra={"trace_id": trace_id, "path": request.url.path},
        )
        logger.error(traceback.format_exc())

        # Don't expose internal details in production
        from minicrm.config import settings
        detail = str(exc) if settings.DEBUG else "An unexpected error occurred"

        return create_problem_response(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            detail=detail,
            request=request,
            trace_id=trace_id,
            allowed_origins=allowed_origins,
        )

    return {
        "crm": handle_crm_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
