"""
Error taxonomy for the intake pipeline.

Every error carries an HTTP status, a human-readable message and, where it
applies, the pipeline step that failed and itemized details. The API layer
renders them as ``{"error": ..., "step": ..., "details": ...}``.
"""

from typing import Any, Dict, List, Optional


class IntakeError(Exception):
    """Base class for all pipeline errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        step: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.step = step
        self.details = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        body: Dict[str, Any] = {"error": self.message}
        if self.step:
            body["step"] = self.step
        if self.details is not None:
            body["details"] = self.details
        return body


class NotFoundError(IntakeError):
    status_code = 404
    code = "NOT_FOUND"


class UnauthorizedError(IntakeError):
    status_code = 401
    code = "UNAUTHORIZED"


class ForbiddenError(IntakeError):
    status_code = 403
    code = "FORBIDDEN"


class BadRequestError(IntakeError):
    status_code = 400
    code = "BAD_REQUEST"


class ValidationFailedError(IntakeError):
    """Hard validation errors; warnings ride along for the submitter."""

    status_code = 400
    code = "VALIDATION_FAILED"

    def __init__(
        self,
        message: str,
        errors: List[str],
        warnings: Optional[List[str]] = None,
        step: Optional[str] = "validation",
    ):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__(
            message,
            step=step,
            details={"errors": self.errors, "warnings": self.warnings},
        )


class InvalidTransitionError(IntakeError):
    status_code = 400
    code = "INVALID_TRANSITION"


class ConflictError(IntakeError):
    status_code = 409
    code = "CONFLICT"


class ConfigurationError(IntakeError):
    status_code = 500
    code = "CONFIGURATION_ERROR"


class UpstreamError(IntakeError):
    """An external system failed; never retried automatically."""

    status_code = 500
    code = "UPSTREAM_FAILURE"


# Package registry


class PackageNotFoundError(NotFoundError):
    def __init__(self, package_name: str):
        self.package_name = package_name
        super().__init__(f'Package "{package_name}" not found on npm', step="npm_check")


class RegistryShapeError(NotFoundError):
    """The registry document lacks a usable ``latest`` version."""

    def __init__(self, message: str):
        super().__init__(message, step="npm_check")


class TransientFetchError(UpstreamError):
    """Network failure or 5xx from an upstream; the caller may retry."""


class TarballDownloadError(UpstreamError):
    def __init__(self, message: str):
        super().__init__(message, step="structure_check")


# CI workflow


class WorkflowDispatchError(UpstreamError):
    pass


class WorkflowFailedError(UpstreamError):
    def __init__(self, conclusion: Optional[str]):
        self.conclusion = conclusion
        super().__init__(f"Build workflow concluded with '{conclusion}'")


class WorkflowTimeoutError(UpstreamError):
    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(
            f"Build workflow did not complete within {timeout_seconds:g} seconds"
        )


class ToolMissingError(UpstreamError):
    """The build reported success but no tool row exists for the package."""

    def __init__(self, package_name: str):
        self.package_name = package_name
        super().__init__(
            f'Build workflow succeeded but no tool was found for package "{package_name}"'
        )
