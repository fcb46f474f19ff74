"""
Domain exceptions.

Authorization denials are never exceptions: they come back as `Verdict` /
`DepartmentDecision` values. The classes here cover the other two categories:
lifecycle / admin precondition failures (caller's fault, 4xx) and broken
infrastructure such as a corrupted hierarchy (5xx, `SYSTEM_ERROR`).
"""

from __future__ import annotations


class OrgAuthzError(Exception):
    """Base class; `code` is a stable machine-readable identifier."""

    code = "ERROR"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class LifecycleError(OrgAuthzError):
    code = "LIFECYCLE_ERROR"


class PreconditionError(LifecycleError):
    code = "PRECONDITION_FAILED"


class NotFoundError(LifecycleError):
    code = "NOT_FOUND"


class OrgTreeError(OrgAuthzError):
    """Invalid tree edit (bad name, second root, cycle on move...)."""

    code = "VALIDATION_ERROR"


class HierarchyIntegrityError(OrgAuthzError):
    """The stored tree is inconsistent (dangling parent link, cycle)."""

    code = "SYSTEM_ERROR"


class PermissionAdminError(OrgAuthzError):
    code = "PERMISSION_ADMIN_ERROR"


class CatalogConfigError(ValueError):
    """Raised when the org catalog YAML is invalid."""
