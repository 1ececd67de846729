"""Uniform result shape returned by every commerce service operation.

Expected business outcomes (stock, caps, validation) come back as failed
results; only unexpected infrastructure/programmer errors raise.
"""

import enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

GENERIC_ERROR_MESSAGE = "Something went wrong. Please try again."


class ErrorKind(str, enum.Enum):
    VALIDATION = "validation_error"
    OUT_OF_STOCK = "out_of_stock"
    INSUFFICIENT_STOCK = "insufficient_stock"
    EXCEEDS_SYSTEM_CAP = "exceeds_system_cap"
    CONFLICT = "conflict_error"
    PERSISTENCE = "persistence_failure"


class ServiceResult(BaseModel):
    """``{success, resource, errors, metadata}`` plus the failure kind."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    success: bool
    resource: Any = None
    errors: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None

    @property
    def failure(self) -> bool:
        return not self.success

    @classmethod
    def ok(cls, resource: Any = None, **metadata: Any) -> "ServiceResult":
        return cls(success=True, resource=resource, metadata=metadata)

    @classmethod
    def fail(
        cls,
        kind: ErrorKind,
        errors: str | list[str],
        resource: Any = None,
        **metadata: Any,
    ) -> "ServiceResult":
        if isinstance(errors, str):
            errors = [errors]
        return cls(
            success=False,
            resource=resource,
            errors=list(errors),
            metadata=metadata,
            error_kind=kind,
        )

    @classmethod
    def persistence_failure(cls, **metadata: Any) -> "ServiceResult":
        """Generic user-facing failure; internals stay in the logs."""
        return cls.fail(ErrorKind.PERSISTENCE, GENERIC_ERROR_MESSAGE, **metadata)
