from __future__ import annotations

from dataclasses import dataclass


class SheetTallyError(ValueError):
    """Base class for pipeline failures that are a function of document content."""

    kind = "error"


class DecodeError(SheetTallyError):
    """The byte stream is not a readable spreadsheet, or it holds no sheets."""

    kind = "decode"


class SchemaError(SheetTallyError):
    """The decoded grid is too small for the selected layout variant."""

    kind = "schema"


class EmptyResultError(SheetTallyError):
    """No document in a batch produced any rows."""

    kind = "empty"

    def __init__(
        self,
        message: str,
        failures: "list[DocumentFailure] | None" = None,
        documents_total: int = 0,
    ) -> None:
        super().__init__(message)
        self.failures = list(failures or [])
        self.documents_total = documents_total


@dataclass
class DocumentFailure:
    name: str
    error_kind: str
    message: str

    @classmethod
    def from_exception(cls, name: str, exc: SheetTallyError) -> "DocumentFailure":
        return cls(name=name, error_kind=exc.kind, message=str(exc))

    def as_dict(self) -> dict[str, str]:
        return {"name": self.name, "error_kind": self.error_kind, "message": self.message}
