"""Error kinds and result payloads shared by catalog operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")


class CatalogError(Exception):
    """Base class for expected catalog failures."""

    code: str = "catalog_error"

    def __init__(self, message: str, *, item_id: object | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.item_id = item_id

    def to_dict(self) -> dict[str, object]:
        return {"code": self.code, "message": self.message, "item_id": self.item_id}


class ValidationError(CatalogError):
    """Merge across differing addresses or malformed merge input."""

    code = "validation_error"


class NotFoundError(CatalogError):
    """Unknown listing, object, address or session id."""

    code = "not_found"


class InvalidArgumentError(CatalogError):
    """Empty selection or unsupported argument value."""

    code = "invalid_argument"


class PersistenceError(CatalogError):
    """Store read/write failure surfaced from the storage backend."""

    code = "persistence_error"


@dataclass(slots=True)
class OperationResult(Generic[T]):
    """Outcome of a single-target operation: a value or an expected error."""

    value: T | None = None
    error: CatalogError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> OperationResult[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: CatalogError) -> OperationResult[T]:
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the recorded error."""

        if self.error is not None:
            raise self.error
        if self.value is None:
            raise RuntimeError("OperationResult has neither value nor error")
        return self.value


@dataclass(slots=True)
class SplitResult:
    """Outcome of splitting objects back into listings."""

    deleted_objects_count: int = 0
    updated_listings_count: int = 0
    errors: list[CatalogError] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "deletedObjectsCount": self.deleted_objects_count,
            "updatedListingsCount": self.updated_listings_count,
            "errors": [error.to_dict() for error in self.errors],
        }
