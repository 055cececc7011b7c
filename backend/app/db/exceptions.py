"""Database-specific exceptions for the Foldly core."""


class DatabaseError(Exception):
    """Base exception for database operations."""

    pass


class DuplicateRecordError(DatabaseError):
    """Raised when a unique constraint rejects an insert or update.

    ``constraint`` names the violated constraint when it can be recovered
    from the driver message (PostgreSQL reports the constraint name, SQLite
    reports the ``table.column`` list).
    """

    def __init__(self, message: str, constraint: str | None = None):
        super().__init__(message)
        self.constraint = constraint


class ConstraintViolationError(DatabaseError):
    """Raised when a foreign key or check constraint is violated."""

    pass


class ConnectionError(DatabaseError):
    """Raised when the database connection fails or a transaction must be retried."""

    pass


# Unique constraints, keyed by name, with the SQLite column spelling of each.
UNIQUE_CONSTRAINTS: dict[str, tuple[str, ...]] = {
    "uq_users_email": ("users.email",),
    "uq_users_username": ("users.username",),
    "users_pkey": ("users.id",),
    "uq_workspaces_user_id": ("workspaces.user_id",),
    "uq_links_slug": ("links.slug",),
    "uq_folders_sibling_name": ("folders.workspace_id", "folders.parent_folder_id", "folders.name"),
    "uq_permissions_link_email": ("permissions.link_id", "permissions.email"),
}


def violated_constraint(exc: BaseException) -> str | None:
    """Best-effort lookup of the unique constraint named in an IntegrityError."""
    message = str(getattr(exc, "orig", None) or exc)
    for name, columns in UNIQUE_CONSTRAINTS.items():
        if name in message:
            return name
        if all(column in message for column in columns):
            return name
    return None
