"""Database access for the gateway.

Only the store handle lives here: schema, migrations and repositories belong
to the domain handler groups that borrow it.
"""

from health_gateway.infrastructure.database.session import (
    StoreHandle,
    create_database_engine,
)

__all__ = [
    "StoreHandle",
    "create_database_engine",
]
