"""
Dataset-agnostic environmental query core.

Modules:
  geometry_identity - Content hashes for GeoJSON geometries
  spatial_predicates - Click / distance / contains / intersects / key predicates
  attribute_filter - ALL/ANY term membership
  temporal_filter - Date range and time-span restriction
  grouping - Span, date and source-area bucketing plus metadata summaries
  result_shaper - KEY/SHAPE/DATA projection and MIN..VAR aggregation
  query_orchestrator - Immutable query plans and their execution
  datasets - Per-dataset field mappings loaded from configs/*.yaml
  store - Store interface and in-memory store
"""

from .geometry_identity import geometry_hash, point_geometry, polygon_geometry
from .query_orchestrator import build_plan, execute, execute_summary
from .store import MemoryStore, Store
