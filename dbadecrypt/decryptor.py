"""
Object Decryption Service

Drives the per-object pipeline (read secret, build known plaintext, acquire
known secret, XOR) across databases and instances. Every object is
independent: a failure is reported and the batch moves on.
"""

import dataclasses
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import structlog

from .config_manager import DbaDecryptConfig, SqlServerConfig
from .exceptions import DbaDecryptError, DecryptionError, ExportError, SqlServerError
from .exporter import SqlFileExporter
from .filters import ObjectFilter
from .known_plaintext import build_template_for
from .models import DecryptionResult, EncryptedObjectDescriptor, TextEncoding
from .object_catalog import ObjectCatalog, filter_databases
from .sql_session import SqlServerSessionManager
from .xor_recovery import decrypt_object

logger = structlog.get_logger(__name__)


@dataclass
class DecryptionFailure:
    """An object or server that could not be processed."""

    server: str
    database: Optional[str]
    object_name: Optional[str]
    reason: str
    error_code: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


@dataclass
class DecryptionReport:
    """Results and failures of a batch run."""

    results: List[DecryptionResult] = field(default_factory=list)
    failures: List[DecryptionFailure] = field(default_factory=list)
    skipped: int = 0

    def extend(self, other: "DecryptionReport") -> None:
        self.results.extend(other.results)
        self.failures.extend(other.failures)
        self.skipped += other.skipped

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [result.to_dict() for result in self.results],
            "failures": [failure.to_dict() for failure in self.failures],
            "skipped": self.skipped,
        }


@dataclass
class EncryptedObjectListing:
    """Encrypted objects found across servers, plus what could not be read."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    failures: List[DecryptionFailure] = field(default_factory=list)


def _failure(
    server: str,
    database: Optional[str],
    error: DbaDecryptError,
    object_name: Optional[str] = None,
) -> DecryptionFailure:
    return DecryptionFailure(
        server=server,
        database=database,
        object_name=object_name,
        reason=error.message,
        error_code=error.error_code,
    )


class ObjectDecryptionService:
    """Decrypts encrypted modules on a single instance."""

    def __init__(
        self,
        catalog: ObjectCatalog,
        server: str,
        encoding: TextEncoding = TextEncoding.ASCII,
        exporter: Optional[SqlFileExporter] = None,
    ) -> None:
        self.catalog = catalog
        self.server = server
        self.encoding = encoding
        self.exporter = exporter

    def decrypt_descriptor(
        self, database: str, descriptor: EncryptedObjectDescriptor
    ) -> Optional[DecryptionResult]:
        """
        Run the pipeline for one object.

        Returns:
            The result, or None when the object has no stored secret

        Raises:
            InvalidDescriptorError, UnsupportedObjectKindError,
            KnownSecretAcquisitionError: Per-object failures
        """
        secret = self.catalog.read_secret(descriptor)
        if not secret:
            logger.debug(
                "no_secret", server=self.server, database=database, object=descriptor.full_name
            )
            return None

        statement = build_template_for(descriptor, len(secret))
        known_secret = self.catalog.acquire_known_secret(statement, descriptor)
        script = decrypt_object(descriptor, secret, known_secret, self.encoding)

        result = DecryptionResult(
            descriptor=descriptor,
            script=script,
            server=self.server,
            database=database,
        )
        logger.info(
            "object_decrypted",
            server=self.server,
            database=database,
            object=descriptor.full_name,
            kind=descriptor.kind.value,
            secret_length=len(secret),
        )
        return result

    def decrypt_database(
        self, database: str, object_filter: Optional[ObjectFilter] = None
    ) -> DecryptionReport:
        """Decrypt every matching encrypted object in ``database``."""
        report = DecryptionReport()
        descriptors = self.catalog.list_encrypted_objects(database, object_filter)

        for descriptor in descriptors:
            try:
                result = self.decrypt_descriptor(database, descriptor)
            except (DecryptionError, SqlServerError) as e:
                logger.warning(
                    "object_skipped",
                    server=self.server,
                    database=database,
                    object=descriptor.full_name,
                    reason=str(e),
                )
                report.failures.append(
                    _failure(self.server, database, e, descriptor.full_name)
                )
                continue

            if result is None:
                report.skipped += 1
                continue

            if self.exporter is not None:
                try:
                    self.exporter.write(result)
                except ExportError as e:
                    logger.warning(
                        "export_failed", object=descriptor.full_name, reason=str(e)
                    )
                    report.failures.append(
                        _failure(self.server, database, e, descriptor.full_name)
                    )
            report.results.append(result)

        return report

    def decrypt_instance(
        self, object_filter: Optional[ObjectFilter] = None
    ) -> DecryptionReport:
        """Decrypt the selected (or all user) databases on this instance."""
        object_filter = object_filter or ObjectFilter()
        requested = object_filter.databases
        available = self.catalog.list_databases(include_system=bool(requested))
        databases = filter_databases(available, requested)

        report = DecryptionReport()
        for database in databases:
            try:
                report.extend(self.decrypt_database(database, object_filter))
            except SqlServerError as e:
                logger.warning(
                    "database_skipped", server=self.server, database=database, reason=str(e)
                )
                report.failures.append(_failure(self.server, database, e))
        return report


SessionFactory = Callable[[str, SqlServerConfig], SqlServerSessionManager]


def check_remote_dac(
    server: str,
    config: SqlServerConfig,
    session_factory: SessionFactory = SqlServerSessionManager,
) -> Optional[bool]:
    """
    Check 'remote admin connections' over a regular connection.

    Returns:
        True/False for the setting, or None when the check itself failed
    """
    probe_config = dataclasses.replace(config, use_dac=False)
    try:
        with session_factory(server, probe_config) as session:
            return ObjectCatalog(session).is_remote_dac_enabled()
    except SqlServerError as e:
        logger.debug("dac_check_failed", server=server, reason=str(e))
        return None


def decrypt_instances(
    config: DbaDecryptConfig,
    object_filter: Optional[ObjectFilter] = None,
    session_factory: SessionFactory = SqlServerSessionManager,
) -> DecryptionReport:
    """
    Decrypt objects on every configured server, one after another.

    A server that cannot be reached is recorded as a failure and the
    remaining servers are still processed.
    """
    encoding = config.decryption.text_encoding
    exporter = (
        SqlFileExporter(config.decryption.export_destination)
        if config.decryption.export_destination
        else None
    )

    report = DecryptionReport()
    for server in config.servers:
        if config.sql_server.use_dac and check_remote_dac(
            server, config.sql_server, session_factory
        ) is False:
            logger.warning(
                "remote_dac_disabled",
                server=server,
                hint="Only local DAC connections will succeed; enable 'remote admin connections'",
            )

        try:
            with session_factory(server, config.sql_server) as session:
                service = ObjectDecryptionService(
                    ObjectCatalog(session), server, encoding, exporter
                )
                report.extend(service.decrypt_instance(object_filter))
        except SqlServerError as e:
            logger.warning("server_skipped", server=server, reason=str(e))
            report.failures.append(_failure(server, None, e))

    logger.info(
        "batch_complete",
        decrypted=len(report.results),
        failed=len(report.failures),
        skipped=report.skipped,
    )
    return report


def list_encrypted(
    config: DbaDecryptConfig,
    object_filter: Optional[ObjectFilter] = None,
    session_factory: SessionFactory = SqlServerSessionManager,
) -> EncryptedObjectListing:
    """
    List encrypted objects on every configured server without decrypting.

    Unreachable servers and unreadable databases are recorded as failures
    and the remaining ones are still listed.
    """
    object_filter = object_filter or ObjectFilter()
    listing = EncryptedObjectListing()
    for server in config.servers:
        try:
            with session_factory(server, config.sql_server) as session:
                catalog = ObjectCatalog(session)
                available = catalog.list_databases(
                    include_system=bool(object_filter.databases)
                )
                for database in filter_databases(available, object_filter.databases):
                    try:
                        descriptors = catalog.list_encrypted_objects(database, object_filter)
                    except SqlServerError as e:
                        logger.warning(
                            "database_skipped", server=server, database=database, reason=str(e)
                        )
                        listing.failures.append(_failure(server, database, e))
                        continue
                    listing.rows.extend(
                        {
                            "server": server,
                            "database": database,
                            "type": descriptor.kind.value,
                            "schema": descriptor.schema,
                            "name": descriptor.name,
                            "parent": descriptor.parent,
                        }
                        for descriptor in descriptors
                    )
        except SqlServerError as e:
            logger.warning("server_skipped", server=server, reason=str(e))
            listing.failures.append(_failure(server, None, e))
    return listing
