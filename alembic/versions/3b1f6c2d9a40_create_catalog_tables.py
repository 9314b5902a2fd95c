"""create_catalog_tables

Revision ID: 3b1f6c2d9a40
Revises:
Create Date: 2026-10-18 09:12:44.310218

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b1f6c2d9a40"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "authors",
        sa.Column("id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("name", sa.String(length=500), nullable=False),
        sa.Column("track_count", sa.Integer(), nullable=False),
        sa.Column("image_url", sa.String(length=1000), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_authors_name", "authors", ["name"])

    op.create_table(
        "books",
        sa.Column("id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("author_name", sa.String(length=500), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=False),
        sa.Column("cover_uri", sa.String(length=1000), nullable=True),
        sa.Column("track_count", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_books_title", "books", ["title"])
    op.create_index("idx_books_author_id", "books", ["author_id"])
    op.create_index("idx_books_author_name", "books", ["author_name"])

    op.create_table(
        "tracks",
        sa.Column("id", sa.Integer(), autoincrement=False, nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("author_name", sa.String(length=500), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=False),
        sa.Column("book_author", sa.String(length=500), nullable=True),
        sa.Column("book_name", sa.String(length=500), nullable=False),
        sa.Column("book_id", sa.Integer(), nullable=False),
        sa.Column("content_uri", sa.String(length=1000), nullable=False),
        sa.Column("cover_uri", sa.String(length=1000), nullable=True),
        sa.Column("file_path", sa.String(length=1000), nullable=False),
        sa.Column("parent_directory_path", sa.String(length=1000), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=200), nullable=True),
        sa.Column("is_favorite", sa.Boolean(), nullable=False),
        sa.Column("annotation", sa.Text(), nullable=True),
        sa.Column("track_number", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("date_added", sa.Integer(), nullable=False),
        sa.Column("mime_type", sa.String(length=100), nullable=True),
        sa.Column("bitrate", sa.Integer(), nullable=True),
        sa.Column("sample_rate", sa.Integer(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_tracks_title", "tracks", ["title"])
    op.create_index("idx_tracks_book_id", "tracks", ["book_id"])
    op.create_index("idx_tracks_author_id", "tracks", ["author_id"])
    op.create_index("idx_tracks_author_name", "tracks", ["author_name"])
    op.create_index("idx_tracks_category", "tracks", ["category"])
    op.create_index(
        "idx_tracks_parent_directory", "tracks", ["parent_directory_path"]
    )

    op.create_table(
        "track_author_cross_ref",
        sa.Column("track_id", sa.Integer(), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=False),
        sa.Column("is_primary", sa.Boolean(), nullable=False),
        sa.PrimaryKeyConstraint("track_id", "author_id"),
    )
    op.create_index(
        "idx_cross_ref_track_id", "track_author_cross_ref", ["track_id"]
    )
    op.create_index(
        "idx_cross_ref_author_id", "track_author_cross_ref", ["author_id"]
    )
    op.create_index(
        "idx_cross_ref_is_primary", "track_author_cross_ref", ["is_primary"]
    )


def downgrade() -> None:
    op.drop_table("track_author_cross_ref")
    op.drop_table("tracks")
    op.drop_table("books")
    op.drop_table("authors")
