"""SQLAlchemy ORM models."""

from .base import Base
from .shape import Shape, ShapeObservation

__all__ = [
    "Base",
    "Shape",
    "ShapeObservation",
]
