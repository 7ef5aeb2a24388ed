"""initial schema: shapes and shape observations

Revision ID: a1b2c3d4e5f6
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from geoalchemy2 import Geometry


# revision identifiers, used by Alembic.
revision: str = "a1b2c3d4e5f6"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the shape and observation tables with PostGIS mirrors."""
    op.execute("CREATE EXTENSION IF NOT EXISTS postgis")

    op.create_table(
        "shapes",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("collection", sa.String(100), nullable=False),
        sa.Column("geometry_hash", sa.String(32), nullable=False),
        sa.Column("geometry", sa.JSON, nullable=True),
        sa.Column("geometry_bounds", sa.JSON, nullable=True),
        sa.Column("geometry_point", sa.JSON, nullable=True),
        sa.Column("geometry_point_radius", sa.Float),
        sa.Column("properties", sa.JSON, nullable=True),
        sa.Column("geom", Geometry("GEOMETRY", srid=4326, spatial_index=False), nullable=True),
        sa.Column("bounds_geom", Geometry("GEOMETRY", srid=4326, spatial_index=False), nullable=True),
        sa.Column("point_geom", Geometry("GEOMETRY", srid=4326, spatial_index=False), nullable=True),
        sa.UniqueConstraint("collection", "geometry_hash", name="uq_shapes_collection_hash"),
    )
    op.create_index("ix_shapes_collection", "shapes", ["collection"])
    op.create_index("ix_shapes_geometry_hash", "shapes", ["geometry_hash"])
    op.create_index("ix_shapes_geom", "shapes", ["geom"], postgresql_using="gist")
    op.create_index("ix_shapes_bounds_geom", "shapes", ["bounds_geom"], postgresql_using="gist")
    op.create_index("ix_shapes_point_geom", "shapes", ["point_geom"], postgresql_using="gist")

    op.create_table(
        "shape_observations",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("collection", sa.String(100), nullable=False),
        sa.Column("geometry_hash", sa.String(32), nullable=False),
        sa.Column("std_date", sa.String(8), nullable=False),
        sa.Column("std_date_span", sa.String(30), nullable=False),
        sa.Column("std_terms", sa.JSON, nullable=True),
        sa.Column("properties", sa.JSON, nullable=True),
        sa.UniqueConstraint(
            "collection", "geometry_hash", "std_date", "std_date_span",
            name="uq_shape_observation",
        ),
    )
    op.create_index(
        "ix_shape_obs_collection_hash", "shape_observations", ["collection", "geometry_hash"],
    )
    op.create_index("ix_shape_obs_date", "shape_observations", ["std_date"])


def downgrade() -> None:
    op.drop_index("ix_shape_obs_date", table_name="shape_observations")
    op.drop_index("ix_shape_obs_collection_hash", table_name="shape_observations")
    op.drop_table("shape_observations")

    op.drop_index("ix_shapes_point_geom", table_name="shapes")
    op.drop_index("ix_shapes_bounds_geom", table_name="shapes")
    op.drop_index("ix_shapes_geom", table_name="shapes")
    op.drop_index("ix_shapes_geometry_hash", table_name="shapes")
    op.drop_index("ix_shapes_collection", table_name="shapes")
    op.drop_table("shapes")
