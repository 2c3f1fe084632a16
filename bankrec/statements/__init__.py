"""Statement storage."""

from .store import StatementStore, paginate

__all__ = ["StatementStore", "paginate"]
