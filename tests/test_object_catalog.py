"""
Tests for encrypted object discovery and secret reads.
"""

from contextlib import contextmanager
from unittest.mock import Mock

import pytest

pytest.importorskip("pyodbc")

from dbadecrypt.exceptions import (  # noqa: E402
    KnownSecretAcquisitionError,
    SqlServerQueryError,
)
from dbadecrypt.filters import ObjectFilter  # noqa: E402
from dbadecrypt.models import ObjectKind  # noqa: E402
from dbadecrypt.object_catalog import (  # noqa: E402
    SECRET_QUERY,
    ObjectCatalog,
    filter_databases,
)


def _transaction_returning(cursor, rolled_back):
    @contextmanager
    def rollback_transaction():
        try:
            yield cursor
        finally:
            rolled_back.append(True)

    return rollback_transaction


class TestListEncryptedObjects:
    """Test cases for list_encrypted_objects."""

    def test_builds_descriptors_and_skips_unsupported(self, mock_session, sample_rows):
        """Test rows become descriptors; CLR aggregates are skipped."""
        mock_session.fetch_all.return_value = sample_rows
        catalog = ObjectCatalog(mock_session)

        descriptors = catalog.list_encrypted_objects("Sales")

        mock_session.use_database.assert_called_once_with("Sales")
        assert [d.kind for d in descriptors] == [
            ObjectKind.STORED_PROCEDURE,
            ObjectKind.SCALAR_FUNCTION,
            ObjectKind.VIEW,
            ObjectKind.TRIGGER,
        ]
        trigger = descriptors[-1]
        assert trigger.parent == "Orders"
        assert trigger.object_id == 104

    def test_applies_name_filter(self, mock_session, sample_rows):
        """Test the object-name filter."""
        mock_session.fetch_all.return_value = sample_rows
        catalog = ObjectCatalog(mock_session)

        descriptors = catalog.list_encrypted_objects(
            "Sales", ObjectFilter(object_names=["report.vw_Sales", "GetX"])
        )

        assert [d.full_name for d in descriptors] == ["dbo.GetX", "report.vw_Sales"]

    def test_separate_calls_do_not_share_state(self, mock_session, sample_rows):
        """Test each database gets its own list."""
        mock_session.fetch_all.side_effect = [sample_rows[:1], sample_rows[2:3]]
        catalog = ObjectCatalog(mock_session)

        first = catalog.list_encrypted_objects("A")
        second = catalog.list_encrypted_objects("B")

        assert len(first) == 1
        assert len(second) == 1
        assert first[0].name == "GetX"
        assert second[0].name == "vw_Sales"


class TestReadSecret:
    """Test cases for read_secret."""

    def test_returns_bytes(self, mock_session, procedure_descriptor):
        """Test the secret is read by schema-qualified name."""
        mock_session.fetch_scalar.return_value = bytearray(b"\x01\x02")
        secret = ObjectCatalog(mock_session).read_secret(procedure_descriptor)

        assert secret == b"\x01\x02"
        mock_session.fetch_scalar.assert_called_once_with(SECRET_QUERY, ("[dbo].[GetX]",))

    @pytest.mark.parametrize("value", [None, b""])
    def test_missing_secret(self, mock_session, procedure_descriptor, value):
        """Test objects without a stored definition yield None."""
        mock_session.fetch_scalar.return_value = value
        assert ObjectCatalog(mock_session).read_secret(procedure_descriptor) is None


class TestAcquireKnownSecret:
    """Test cases for acquire_known_secret."""

    def test_success_rolls_back(self, mock_session, procedure_descriptor, fake_cursor):
        """Test the probe runs the statement then reads the ciphertext."""
        cursor = fake_cursor([None, (b"\xaa\xbb",)])
        rolled_back = []
        mock_session.rollback_transaction = _transaction_returning(cursor, rolled_back)

        known_secret = ObjectCatalog(mock_session).acquire_known_secret(
            "  ALTER PROCEDURE [dbo].[GetX] WITH ENCRYPTION AS RETURN 0;",
            procedure_descriptor,
        )

        assert known_secret == b"\xaa\xbb"
        assert cursor.executed[0][0].strip().startswith("ALTER PROCEDURE")
        assert cursor.executed[1] == (SECRET_QUERY, ("[dbo].[GetX]",))
        assert rolled_back == [True]

    def test_engine_failure(self, mock_session, procedure_descriptor, fake_cursor):
        """Test engine errors become KnownSecretAcquisitionError and still roll back."""
        cursor = fake_cursor([SqlServerQueryError("Incorrect syntax")])
        rolled_back = []
        mock_session.rollback_transaction = _transaction_returning(cursor, rolled_back)

        with pytest.raises(KnownSecretAcquisitionError) as exc_info:
            ObjectCatalog(mock_session).acquire_known_secret("ALTER ...", procedure_descriptor)

        assert exc_info.value.context["object_name"] == "dbo.GetX"
        assert rolled_back == [True]

    def test_empty_read(self, mock_session, procedure_descriptor, fake_cursor):
        """Test an empty ciphertext is treated as a failure."""
        cursor = fake_cursor([None, None])
        mock_session.rollback_transaction = _transaction_returning(cursor, [])

        with pytest.raises(KnownSecretAcquisitionError, match="no ciphertext"):
            ObjectCatalog(mock_session).acquire_known_secret("ALTER ...", procedure_descriptor)


class TestInstanceQueries:
    """Test cases for instance-level helpers."""

    def test_list_databases(self, mock_session):
        """Test system databases are excluded unless requested."""
        mock_session.fetch_all.return_value = [("master", 1), ("Sales", 5), ("tempdb", 2), ("HR", 6)]
        catalog = ObjectCatalog(mock_session)

        assert catalog.list_databases() == ["Sales", "HR"]
        assert catalog.list_databases(include_system=True) == ["master", "Sales", "tempdb", "HR"]

    @pytest.mark.parametrize("value,expected", [(1, True), (0, False), (None, False)])
    def test_remote_dac_enabled(self, mock_session, value, expected):
        """Test the remote admin connections check."""
        mock_session.fetch_scalar = Mock(return_value=value)
        assert ObjectCatalog(mock_session).is_remote_dac_enabled() is expected


class TestFilterDatabases:
    """Test cases for filter_databases."""

    def test_no_request_returns_all(self):
        """Test that no request keeps every database."""
        assert filter_databases(["A", "B"], []) == ["A", "B"]

    def test_case_insensitive_selection(self):
        """Test requested order, case-insensitive matching and missing names."""
        assert filter_databases(["Sales", "HR"], ["hr", "Missing", "SALES", "hr"]) == ["HR", "Sales"]
