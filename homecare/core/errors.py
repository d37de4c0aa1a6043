"""
Error taxonomy shared by the stores, the migrator and the repository.

ValidationError and RoleConflict are caller-fixable and abort an operation
before anything is written. StorageUnavailable and UnsupportedSchemaVersion
are blocking: the first is safe to retry, the second needs an app update.
"""

from __future__ import annotations


class HomecareError(Exception):
    """Base class for repository-level failures."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(HomecareError):
    kind = "validation_error"


class RoleConflict(HomecareError):
    kind = "role_conflict"

    def __init__(self, name: str, existing_role: str, requested_role: str):
        super().__init__(
            f'"{name}" is already registered as {existing_role}; it cannot also be {requested_role}.'
        )
        self.name = name
        self.existing_role = existing_role
        self.requested_role = requested_role


class StorageUnavailable(HomecareError):
    kind = "storage_unavailable"


class UnsupportedSchemaVersion(HomecareError):
    kind = "unsupported_schema_version"

    def __init__(self, found, supported: int, message: str | None = None):
        super().__init__(
            message
            or f"Stored document has schema version {found!r}; this build supports up to {supported}."
        )
        self.found = found
        self.supported = supported
