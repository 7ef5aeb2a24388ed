"""CLI tool to load a dataset's shapes and observations into the database.

Shapes come from a GeoJSON FeatureCollection. Each feature's geometry is
stored under the dataset's primary shape field ("geometry", or the first
configured shape field for grid datasets such as worldclim) and hashed to
form its key. Other shape fields (geometry_bounds, geometry_point,
geometry_point_radius) are read from same-named members of the feature.

Observations come from a CSV with columns geometry_hash, std_date,
std_date_span and one column per observed variable. Dotted column names
("topography.slope") become nested properties; std_terms lists the
variables present on each row.

Usage:
    python -m cli.ingest_dataset shapes unit_shapes path/to/units.geojson
    python -m cli.ingest_dataset shapes worldclim path/to/cells.geojson --clear
    python -m cli.ingest_dataset observations unit_shapes path/to/shape_data.csv
    python -m cli.ingest_dataset observations drought_observatory path/to/do.csv --dry-run
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pandas as pd
from sqlalchemy import delete
from sqlalchemy.dialects.postgresql import insert as pg_insert

from app.database import SessionLocal
from app.models import Shape, ShapeObservation
from app.spatial_sync import register_spatial_sync
from core.datasets import DatasetConfig, get_dataset
from core.geometry_identity import geometry_hash
from core.result_shaper import unflatten
from core.temporal_filter import DateSpan, validate_date

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-8s %(message)s",
)
log = logging.getLogger(__name__)

BATCH_SIZE = 2000

OBSERVATION_KEY_COLUMNS = ("geometry_hash", "std_date", "std_date_span")


# ── Parsing ──────────────────────────────────────────────────────────

def primary_shape_field(dataset: DatasetConfig) -> str:
    if "geometry" in dataset.shape_fields:
        return "geometry"
    return dataset.shape_fields[0]


def feature_to_row(feature: dict, dataset: DatasetConfig) -> dict:
    """Shape row (without collection) for one GeoJSON feature."""
    key_field = primary_shape_field(dataset)
    row = {key_field: feature["geometry"]}
    for name in ("geometry", "geometry_bounds", "geometry_point", "geometry_point_radius"):
        if name != key_field and feature.get(name) is not None:
            row[name] = feature[name]
    row["geometry_hash"] = geometry_hash(row[key_field])
    row["properties"] = feature.get("properties") or {}
    return row


def read_features(path: Path, dataset: DatasetConfig) -> list[dict]:
    with open(path) as f:
        data = json.load(f)
    features = data["features"] if data.get("type") == "FeatureCollection" else [data]
    rows = [feature_to_row(feat, dataset) for feat in features if feat.get("geometry")]
    skipped = len(features) - len(rows)
    if skipped:
        log.warning("Skipped %d features without geometry", skipped)
    return rows


def frame_to_observations(df: pd.DataFrame) -> list[dict]:
    """Observation rows (without collection) from a CSV frame; blank cells are dropped."""
    missing = [c for c in OBSERVATION_KEY_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"Observation file is missing columns: {missing}")

    term_columns = [c for c in df.columns if c not in OBSERVATION_KEY_COLUMNS]
    rows = []
    for record in df.to_dict(orient="records"):
        flat = {tuple(c.split(".")): record[c] for c in term_columns if not pd.isna(record[c])}
        properties = unflatten(flat)
        rows.append({
            "geometry_hash": str(record["geometry_hash"]),
            "std_date": validate_date(str(record["std_date"]), "std_date"),
            "std_date_span": DateSpan.parse(record["std_date_span"]).value,
            "std_terms": sorted(properties),
            "properties": properties,
        })
    return rows


def read_observations(path: Path) -> list[dict]:
    df = pd.read_csv(path, dtype={"geometry_hash": str, "std_date": str, "std_date_span": str})
    log.info("Read %d observation rows from %s", len(df), path.name)
    return frame_to_observations(df)


# ── Loading ──────────────────────────────────────────────────────────

def load_shapes(session, dataset: DatasetConfig, rows: list[dict], clear: bool) -> int:
    """Insert or update shapes through the ORM so the spatial sync listener fills geom columns."""
    if clear:
        session.execute(delete(Shape).where(Shape.collection == dataset.collection))

    existing = {
        s.geometry_hash: s
        for s in session.query(Shape).filter(Shape.collection == dataset.collection)
    }
    for i, row in enumerate(rows, 1):
        shape_row = existing.get(row["geometry_hash"])
        if shape_row is None:
            shape_row = Shape(collection=dataset.collection, geometry_hash=row["geometry_hash"])
            session.add(shape_row)
            existing[row["geometry_hash"]] = shape_row
        for name, value in row.items():
            setattr(shape_row, name, value)
        if i % BATCH_SIZE == 0:
            session.flush()
            log.info("  %d / %d shapes", i, len(rows))

    session.commit()
    log.info("Loaded %d shapes into %s", len(rows), dataset.collection)
    return len(rows)


def load_observations(session, dataset: DatasetConfig, rows: list[dict], clear: bool) -> int:
    if not dataset.has_observations:
        raise ValueError(f"Dataset {dataset.name} has no observation collection")
    if clear:
        session.execute(
            delete(ShapeObservation).where(ShapeObservation.collection == dataset.observations)
        )

    total_upserted = 0
    for i in range(0, len(rows), BATCH_SIZE):
        batch = [dict(r, collection=dataset.observations) for r in rows[i:i + BATCH_SIZE]]
        stmt = pg_insert(ShapeObservation).values(batch)
        stmt = stmt.on_conflict_do_update(
            constraint="uq_shape_observation",
            set_={
                "std_terms": stmt.excluded.std_terms,
                "properties": stmt.excluded.properties,
            },
        )
        session.execute(stmt)
        total_upserted += len(batch)

    session.commit()
    log.info("Upserted %d observations into %s", total_upserted, dataset.observations)
    return total_upserted


# ── Main ─────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(
        description="Load dataset shapes (GeoJSON) or observations (CSV) into the database",
    )
    parser.add_argument("kind", choices=["shapes", "observations"])
    parser.add_argument("dataset", help="Dataset name, e.g. unit_shapes, worldclim")
    parser.add_argument("path", help="GeoJSON file for shapes, CSV file for observations")
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Clear the dataset's existing records before loading",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Parse and count records without loading",
    )
    args = parser.parse_args()

    path = Path(args.path)
    if not path.exists():
        log.error("Input file not found: %s", path)
        sys.exit(1)

    dataset = get_dataset(args.dataset)
    if args.kind == "shapes":
        rows = read_features(path, dataset)
    else:
        rows = read_observations(path)

    if args.dry_run:
        log.info("Dry run: %d %s parsed for %s", len(rows), args.kind, dataset.name)
        return

    register_spatial_sync()
    session = SessionLocal()
    t0 = time.time()
    try:
        if args.kind == "shapes":
            loaded = load_shapes(session, dataset, rows, args.clear)
        else:
            loaded = load_observations(session, dataset, rows, args.clear)
        log.info("All done: %d records loaded in %.1fs", loaded, time.time() - t0)
    except Exception:
        session.rollback()
        log.exception("Ingestion failed")
        sys.exit(1)
    finally:
        session.close()


if __name__ == "__main__":
    main()
