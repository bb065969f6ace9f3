"""
Error Taxonomy

Exceptions raised by the filter parser, services and data access layer.
Each class carries the HTTP status the application maps it to.

Author: Waqqas Hanafi
Copyright: © 2025 Calaveras County Health and Human Services Agency
"""

from typing import Iterable, List, Optional


class InventoryError(Exception):
    """Base class of every error surfaced through the HTTP layer"""

    status_code = 500
    reason = "Internal Server Error"

    def __init__(self, detail: str, reason: Optional[str] = None):
        super().__init__(detail)
        self.detail = detail
        if reason is not None:
            self.reason = reason


class ValidationError(InventoryError):
    """Malformed or disallowed query parameter value"""

    status_code = 422
    reason = "Unprocessable Entity"

    def __init__(self, field: str, value: Optional[str] = None, detail: Optional[str] = None):
        self.field = field
        self.value = value
        if detail is None:
            detail = f"invalid value {value!r} for parameter {field!r}" if value is not None else f"invalid parameter {field!r}"
        super().__init__(detail)


class InvalidAckError(ValidationError):
    """Refused acknowledgement of NO_DATA alerts"""

    def __init__(self, detail: str = "NO_DATA alerts cannot be acknowledged"):
        super().__init__("alertCode", detail=detail)


class BadRequestError(InventoryError):
    status_code = 400
    reason = "Bad Request"


class InvalidProfileIdError(BadRequestError):
    def __init__(self, profile_id: str):
        self.profile_id = profile_id
        super().__init__(f"invalid profile id {profile_id}")


class NotFoundError(InventoryError):
    status_code = 404
    reason = "Not Found"


class HostNotFoundError(NotFoundError):
    def __init__(self, hostname: str = ""):
        self.hostname = hostname
        super().__init__(f"host {hostname!r} not found" if hostname else "host not found")


class ClusterNotFoundError(NotFoundError):
    def __init__(self, name: str = ""):
        self.name = name
        super().__init__(f"cluster {name!r} not found" if name else "cluster not found")


class ProfileNotFoundError(NotFoundError):
    def __init__(self, profile_id: str = ""):
        self.profile_id = profile_id
        super().__init__(f"profile {profile_id!r} not found" if profile_id else "profile not found")


class ForbiddenError(InventoryError):
    status_code = 403
    reason = "Forbidden"


class ReadOnlyError(ForbiddenError):
    def __init__(self):
        super().__init__("The API is disabled because the service is put in read-only mode")


class InternalError(InventoryError):
    """Downstream failure: database, template or SDK"""

    def __init__(self, detail: str, cause: Optional[BaseException] = None):
        self.cause = cause
        if cause is not None:
            detail = f"{detail}: {cause}"
        super().__init__(detail)


class MultiError(InventoryError):
    """Aggregate of failures collected while processing a batch"""

    def __init__(self, errors: Optional[Iterable[Exception]] = None):
        self.errors: List[Exception] = list(errors or [])
        super().__init__(self._render())

    def append(self, error: Exception) -> None:
        self.errors.append(error)
        self.detail = self._render()
        self.args = (self.detail,)

    def __len__(self) -> int:
        return len(self.errors)

    def __bool__(self) -> bool:
        return bool(self.errors)

    def _render(self) -> str:
        count = len(self.errors)
        noun = "error" if count == 1 else "errors"
        joined = ", ".join(f"'{e}'" for e in self.errors)
        return f"{count} {noun} occurred: {joined}"
