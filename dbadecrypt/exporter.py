"""
SQL File Exporter

Writes recovered definitions to
``<destination>/<server>/<database>/<kind>/<schema>.<name>.sql``.
Existing files are overwritten on every run.
"""

import logging
import re
from pathlib import Path
from typing import Union

from .exceptions import ExportError
from .models import DecryptionResult

logger = logging.getLogger(__name__)

_UNSAFE_PATH_CHARS = re.compile(r'[<>:"/|?*\x00-\x1f]')


def safe_path_component(value: str) -> str:
    """Make a server, database or object name usable as a path component."""
    # Named instances (HOST\INSTANCE) keep their instance part
    value = value.replace("\\", "$")
    value = _UNSAFE_PATH_CHARS.sub("_", value)
    return value.strip() or "_"


class SqlFileExporter:
    """Export decrypted definitions as .sql files."""

    def __init__(self, destination: Union[str, Path]) -> None:
        """
        Initialize the exporter.

        Args:
            destination: Root directory for exported files
        """
        self.destination = Path(destination)

    def path_for(self, result: DecryptionResult) -> Path:
        """Compute the output path for a result without touching the disk."""
        descriptor = result.descriptor
        return (
            self.destination
            / safe_path_component(result.server)
            / safe_path_component(result.database)
            / descriptor.kind.value
            / safe_path_component(f"{descriptor.schema}.{descriptor.name}.sql")
        )

    def write(self, result: DecryptionResult) -> Path:
        """
        Write a result's script, overwriting any previous export.

        Returns:
            Path of the written file

        Raises:
            ExportError: If the directory or file cannot be written
        """
        path = self.path_for(result)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(result.script, encoding="utf-8")
        except OSError as e:
            raise ExportError(
                f"Failed to write {result.descriptor.full_name}",
                path=str(path),
                cause=e,
            ) from e

        result.output_file = str(path)
        logger.info(f"📄 Exported {result.descriptor.full_name} to {path}")
        return path
