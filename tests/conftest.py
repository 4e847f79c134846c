from typing import Any, List
from unittest.mock import MagicMock, Mock

import pytest

from dbadecrypt.models import EncryptedObjectDescriptor, ObjectKind

# ============================================================================
# Shared descriptors
# ============================================================================


@pytest.fixture
def procedure_descriptor() -> EncryptedObjectDescriptor:
    """Provide an encrypted stored procedure descriptor."""
    return EncryptedObjectDescriptor(
        schema="dbo", name="GetX", kind=ObjectKind.STORED_PROCEDURE, object_id=101
    )


@pytest.fixture
def trigger_descriptor() -> EncryptedObjectDescriptor:
    """Provide an encrypted trigger descriptor."""
    return EncryptedObjectDescriptor(
        schema="sales",
        name="trg_Orders_Audit",
        kind=ObjectKind.TRIGGER,
        parent="Orders",
        object_id=202,
    )


def keystream(length: int, seed: int = 11) -> bytes:
    """Deterministic stand-in for the engine's RC4 keystream."""
    return bytes((i * 37 + seed) % 256 for i in range(length))


@pytest.fixture
def engine_keystream():
    """Provide the keystream helper."""
    return keystream


# ============================================================================
# SQL Server fakes
# ============================================================================


class FakeCursor:
    """Cursor fake that returns queued rows for each execute call."""

    def __init__(self, rows_by_call: List[Any]) -> None:
        self.rows_by_call = list(rows_by_call)
        self.executed: List[tuple] = []
        self._current: Any = None
        self.closed = False

    def execute(self, query: str, *params: Any) -> "FakeCursor":
        self.executed.append((query, params))
        self._current = self.rows_by_call.pop(0) if self.rows_by_call else None
        if isinstance(self._current, Exception):
            raise self._current
        return self

    def fetchone(self) -> Any:
        if isinstance(self._current, list):
            return self._current[0] if self._current else None
        return self._current

    def fetchall(self) -> List[Any]:
        return list(self._current or [])

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def mock_session() -> Mock:
    """Provide a mock SqlServerSessionManager."""
    session = MagicMock()
    session.server = "sql01"
    session.fetch_all = Mock(return_value=[])
    session.fetch_scalar = Mock(return_value=None)
    return session


@pytest.fixture
def sample_rows() -> List[tuple]:
    """Provide catalog rows as returned by the encrypted objects query."""
    return [
        (101, "dbo", "GetX", "P ", None),
        (102, "dbo", "fn_Total", "FN", None),
        (103, "report", "vw_Sales", "V ", None),
        (104, "sales", "trg_Orders_Audit", "TR", "Orders"),
        (105, "dbo", "clr_Agg", "AF", None),
    ]


@pytest.fixture
def fake_cursor():
    """Provide the FakeCursor class for building scripted cursors."""
    return FakeCursor
