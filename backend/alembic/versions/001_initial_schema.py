"""Initial workspace schema.

Revision ID: 001
Revises:
Create Date: 2026-10-18

Creates the tenant tables: users, workspaces, folders, files, links and
link permissions. Resource ids are VARCHAR(36) UUID strings; user ids are
the identity provider's ids and are stored as given.

Changes:
- Create users with unique email and username
- Create workspaces (one per user, cascade on user delete)
- Create folders with a self-referencing parent and unique sibling names
- Create links with a unique slug
- Create permissions with one row per (link, email)
- Create files, nulling link_id when the source link is deleted
"""

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("username", sa.String(100), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=True),
        sa.Column("last_name", sa.String(255), nullable=True),
        sa.Column("storage_used", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("deleted_at", sa.DateTime, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.UniqueConstraint("username", name="uq_users_username"),
    )

    op.create_table(
        "workspaces",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "user_id",
            sa.String(255),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False, server_default="My Files"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", name="uq_workspaces_user_id"),
    )

    op.create_table(
        "folders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "workspace_id",
            sa.String(36),
            sa.ForeignKey("workspaces.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "parent_folder_id",
            sa.String(36),
            sa.ForeignKey("folders.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("workspace_id", "parent_folder_id", "name", name="uq_folders_sibling_name"),
    )
    op.create_index("ix_folders_workspace_id", "folders", ["workspace_id"])
    op.create_index("ix_folders_parent_folder_id", "folders", ["parent_folder_id"])

    op.create_table(
        "links",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "workspace_id",
            sa.String(36),
            sa.ForeignKey("workspaces.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "root_folder_id",
            sa.String(36),
            sa.ForeignKey("folders.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("slug", sa.String(100), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("link_type", sa.String(20), nullable=False, server_default="custom"),
        sa.Column("is_public", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("require_email", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("require_password", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("expires_at", sa.DateTime, nullable=True),
        sa.Column("max_files", sa.Integer, nullable=False, server_default="100"),
        sa.Column("max_file_size", sa.BigInteger, nullable=False, server_default=str(100 * 1024 * 1024)),
        sa.Column("notify_on_upload", sa.Boolean, nullable=False, server_default="true"),
        sa.Column("custom_message", sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("slug", name="uq_links_slug"),
    )
    op.create_index("ix_links_workspace_id", "links", ["workspace_id"])

    op.create_table(
        "permissions",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "link_id",
            sa.String(36),
            sa.ForeignKey("links.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("is_verified", sa.Boolean, nullable=False, server_default="false"),
        sa.Column("verified_at", sa.DateTime, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("link_id", "email", name="uq_permissions_link_email"),
    )
    op.create_index("ix_permissions_link_id", "permissions", ["link_id"])

    op.create_table(
        "files",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "workspace_id",
            sa.String(36),
            sa.ForeignKey("workspaces.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "folder_id",
            sa.String(36),
            sa.ForeignKey("folders.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "link_id",
            sa.String(36),
            sa.ForeignKey("links.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_size", sa.BigInteger, nullable=False, server_default="0"),
        sa.Column("mime_type", sa.String(255), nullable=False, server_default="application/octet-stream"),
        sa.Column("storage_path", sa.Text, nullable=False),
        sa.Column("uploader_email", sa.String(255), nullable=True),
        sa.Column("uploader_name", sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_files_workspace_id", "files", ["workspace_id"])
    op.create_index("ix_files_folder_id", "files", ["folder_id"])
    op.create_index("ix_files_link_id", "files", ["link_id"])


def downgrade() -> None:
    op.drop_table("files")
    op.drop_table("permissions")
    op.drop_table("links")
    op.drop_table("folders")
    op.drop_table("workspaces")
    op.drop_table("users")
