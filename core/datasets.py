"""
Dataset registry: per-dataset field mappings for the query engine.

Every route group queries the same engine; datasets only differ in where
their geometries, terms and descriptors live. Each dataset is described by a
YAML file in core/configs/ and resolved once per request.

Usage:
    dataset = get_dataset("worldclim")
    dataset.spatial_field("click")   # -> "geometry_bounds"
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from core.errors import ValidationError

logger = logging.getLogger(__name__)

CONFIGS_DIR = Path(__file__).parent / "configs"

SPATIAL_KINDS = ("click", "distance", "contains", "intersects")

_DATASETS: dict[str, "DatasetConfig"] = {}


@dataclass(frozen=True)
class DatasetConfig:
    """Field mapping for a single dataset."""
    name: str                          # "unit_shapes", "worldclim", etc.
    title: str                         # "Genetic Conservation Unit Shapes"
    collection: str                    # geometry collection name in the store
    observations: Optional[str] = None  # related time-series collection, if any
    spatial_fields: dict = field(default_factory=dict)  # predicate kind -> record field
    shape_fields: tuple = ("geometry",)  # fields added by the SHAPE projection
    terms_field: str = "std_terms"     # dotted path of the record's term list
    radius_field: Optional[str] = None  # source area resolution, for area grouping
    descriptors: dict = field(default_factory=dict)  # logical name -> dotted property path

    @classmethod
    def from_dict(cls, data: dict) -> "DatasetConfig":
        spatial = {kind: "geometry" for kind in SPATIAL_KINDS}
        spatial.update(data.get("spatial_fields", {}) or {})
        unknown = set(spatial) - set(SPATIAL_KINDS)
        if unknown:
            raise ValueError(f"Unknown spatial field kinds for {data['name']}: {sorted(unknown)}")

        return cls(
            name=data["name"],
            title=data.get("title", data["name"]),
            collection=data.get("collection", data["name"]),
            observations=data.get("observations"),
            spatial_fields=spatial,
            shape_fields=tuple(data.get("shape_fields", ["geometry"])),
            terms_field=data.get("terms_field", "std_terms"),
            radius_field=data.get("radius_field"),
            descriptors=dict(data.get("descriptors", {}) or {}),
        )

    @classmethod
    def from_yaml(cls, yaml_path: Path) -> "DatasetConfig":
        """Load dataset config from a YAML file."""
        with open(yaml_path) as f:
            data = yaml.safe_load(f)
        return cls.from_dict(data)

    @property
    def has_observations(self) -> bool:
        return self.observations is not None

    def spatial_field(self, kind: str) -> str:
        return self.spatial_fields.get(kind, "geometry")

    def descriptor_path(self, descriptor: str) -> str:
        """Resolve a logical descriptor name; raises ValidationError if unknown."""
        if descriptor in self.descriptors:
            return self.descriptors[descriptor]
        raise ValidationError(
            f"Unknown descriptor {descriptor!r} for {self.name}. "
            f"Supported: {sorted(self.descriptors)}",
            field="descriptor",
        )


def resolve_path(record: dict, path: str):
    """Follow a dotted path ("properties.topography.geo_shape_area") into a record."""
    node = record
    for part in path.split("."):
        if not isinstance(node, dict):
            return None
        node = node.get(part)
        if node is None:
            return None
    return node


def load_datasets(configs_dir: Optional[Path] = None) -> dict[str, DatasetConfig]:
    """Load every dataset YAML in `configs_dir` into the registry."""
    configs_dir = configs_dir or CONFIGS_DIR
    _DATASETS.clear()
    for yaml_path in sorted(configs_dir.glob("*.yaml")):
        config = DatasetConfig.from_yaml(yaml_path)
        _DATASETS[config.name] = config
        logger.debug("Loaded dataset config %s from %s", config.name, yaml_path.name)
    return dict(_DATASETS)


def register_dataset(config: DatasetConfig):
    """Register (or replace) a dataset config."""
    _DATASETS[config.name] = config


def get_dataset(name: str) -> DatasetConfig:
    if not _DATASETS:
        load_datasets()
    if name not in _DATASETS:
        raise ValidationError(
            f"Unknown dataset: '{name}'. Supported: {sorted(_DATASETS)}", field="dataset",
        )
    return _DATASETS[name]


def list_datasets() -> list[DatasetConfig]:
    if not _DATASETS:
        load_datasets()
    return [_DATASETS[name] for name in sorted(_DATASETS)]
