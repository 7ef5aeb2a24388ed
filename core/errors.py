"""
Query error taxonomy.

Three outcomes a caller must be able to tell apart:
  - ValidationError: malformed or out-of-range input, raised before any store access
  - StoreFailure: the backing store failed; propagated as-is, never retried here
  - empty result: not an exception at all (an empty list or a zero-count aggregate)
"""

from typing import Optional


class QueryError(Exception):
    """Base class for query engine failures."""
    pass


class ValidationError(QueryError):
    """
    Raised when request parameters cannot form a valid query plan.

    Examples:
        - latitude outside [-90, 90]
        - unknown span, match mode or result shape token
        - malformed GeoJSON reference geometry
    """

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field

    def to_dict(self) -> dict:
        return {"error": "validation", "field": self.field, "detail": self.message}


class StoreFailure(QueryError):
    """
    Raised when the external store errors out (timeout, bad query, lost connection).

    The original exception is kept as __cause__.
    """

    def __init__(self, message: str, collection: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.collection = collection

    def to_dict(self) -> dict:
        return {"error": "store", "collection": self.collection, "detail": self.message}
