"""
Encrypted Object Catalog

Reads encrypted modules and their obfuscated definitions from a SQL Server
database. ``sys.sysobjvalues`` is only visible over the dedicated
administrator connection, so the session is expected to be a DAC session.
"""

import logging
from typing import Iterable, List, Optional

from .exceptions import (
    KnownSecretAcquisitionError,
    SqlServerError,
    UnsupportedObjectKindError,
)
from .filters import ObjectFilter
from .models import EncryptedObjectDescriptor, ObjectKind
from .sql_session import SqlServerSessionManager

logger = logging.getLogger(__name__)

ENCRYPTED_OBJECTS_QUERY = """
SELECT o.object_id,
       SCHEMA_NAME(o.schema_id) AS schema_name,
       o.name,
       o.type,
       OBJECT_NAME(o.parent_object_id) AS parent_name
FROM sys.sql_modules AS m
INNER JOIN sys.objects AS o ON o.object_id = m.object_id
WHERE m.definition IS NULL
ORDER BY o.type, schema_name, o.name;
"""

SECRET_QUERY = """
SELECT imageval
FROM sys.sysobjvalues
WHERE objid = OBJECT_ID(?)
  AND valclass = 1
  AND subobjid = 1;
"""

ONLINE_DATABASES_QUERY = """
SELECT name, database_id
FROM sys.databases
WHERE state_desc = 'ONLINE'
ORDER BY name;
"""

# master, tempdb, model, msdb
SYSTEM_DATABASE_MAX_ID = 4

REMOTE_DAC_QUERY = """
SELECT CAST(value_in_use AS int)
FROM sys.configurations
WHERE name = 'remote admin connections';
"""


class ObjectCatalog:
    """Discovery and secret reads for encrypted modules on one instance."""

    def __init__(self, session: SqlServerSessionManager) -> None:
        self.session = session

    def is_remote_dac_enabled(self) -> bool:
        """Whether 'remote admin connections' is switched on for the instance."""
        value = self.session.fetch_scalar(REMOTE_DAC_QUERY)
        return bool(value)

    def list_databases(self, include_system: bool = False) -> List[str]:
        """Names of online databases, user databases only unless asked."""
        return [
            name
            for name, database_id in self.session.fetch_all(ONLINE_DATABASES_QUERY)
            if include_system or database_id > SYSTEM_DATABASE_MAX_ID
        ]

    def list_encrypted_objects(
        self, database: str, object_filter: Optional[ObjectFilter] = None
    ) -> List[EncryptedObjectDescriptor]:
        """
        Enumerate encrypted modules in ``database``.

        Rows whose type has no known-plaintext template are skipped with a
        warning.

        Args:
            database: Database to inspect
            object_filter: Optional name filter

        Returns:
            Descriptors in catalog order
        """
        self.session.use_database(database)
        rows = self.session.fetch_all(ENCRYPTED_OBJECTS_QUERY)

        descriptors: List[EncryptedObjectDescriptor] = []
        for object_id, schema, name, type_code, parent in rows:
            try:
                kind = ObjectKind.from_type_code(type_code)
            except UnsupportedObjectKindError as e:
                logger.warning(f"⚠️  Skipping {database}.{schema}.{name}: {e}")
                continue

            descriptor = EncryptedObjectDescriptor(
                schema=schema,
                name=name,
                kind=kind,
                parent=parent,
                object_id=object_id,
            )
            if object_filter is None or object_filter.matches(descriptor):
                descriptors.append(descriptor)

        logger.info(
            f"Found {len(descriptors)} encrypted object(s) in {self.session.server}.{database}"
        )
        return descriptors

    def read_secret(self, descriptor: EncryptedObjectDescriptor) -> Optional[bytes]:
        """
        Read the obfuscated definition of an object.

        Returns:
            The secret bytes, or None when the object has no stored definition
        """
        value = self.session.fetch_scalar(
            SECRET_QUERY, (descriptor.schema_qualified_name,)
        )
        if not value:
            return None
        return bytes(value)

    def acquire_known_secret(
        self, statement: str, descriptor: EncryptedObjectDescriptor
    ) -> bytes:
        """
        Execute ``statement`` and read back the engine's ciphertext for it.

        The ALTER runs inside a transaction that is rolled back on every exit
        path, so the real object is left untouched.

        Raises:
            KnownSecretAcquisitionError: If the statement or the read fails,
                or the read returns nothing
        """
        try:
            with self.session.rollback_transaction() as cursor:
                cursor.execute(statement)
                cursor.execute(SECRET_QUERY, descriptor.schema_qualified_name)
                row = cursor.fetchone()
        except SqlServerError as e:
            raise KnownSecretAcquisitionError(
                f"Engine rejected the known-plaintext statement: {e.message}",
                object_name=descriptor.full_name,
                cause=e,
            ) from e

        if row is None or not row[0]:
            raise KnownSecretAcquisitionError(
                "Engine returned no ciphertext for the known-plaintext statement",
                object_name=descriptor.full_name,
            )
        return bytes(row[0])


def filter_databases(available: Iterable[str], requested: Optional[Iterable[str]]) -> List[str]:
    """Keep the requested databases that exist, in the order requested."""
    available_list = list(available)
    if not requested:
        return available_list

    by_name = {name.lower(): name for name in available_list}
    selected = []
    for name in requested:
        match = by_name.get(name.lower())
        if match is None:
            logger.warning(f"⚠️  Database {name} not found or not online, skipping")
            continue
        if match not in selected:
            selected.append(match)
    return selected
