"""Filter model for selecting encrypted objects by database and name."""

from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .models import EncryptedObjectDescriptor


class ObjectFilter(BaseModel):
    """Selects which databases and objects to decrypt.

    Attributes:
        databases: Database names to inspect (empty means every online user database)
        object_names: Object names, bare or schema-qualified (empty means all)
    """

    databases: Optional[List[str]] = Field(default_factory=list)
    object_names: Optional[List[str]] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def convert_none_to_empty_list(cls, data: Any) -> Any:
        """Convert None values to empty lists before other validation."""
        if isinstance(data, dict):
            if data.get("databases") is None:
                data["databases"] = []
            if data.get("object_names") is None:
                data["object_names"] = []
        return data

    @field_validator("databases", "object_names")
    @classmethod
    def strip_and_deduplicate(cls, v: Optional[List[str]]) -> List[str]:
        """Strip whitespace and brackets, drop blanks and case-insensitive duplicates."""
        if v is None:
            return []

        cleaned = []
        seen = set()
        for raw in v:
            value = ".".join(part.strip().strip("[]") for part in raw.split("."))
            if not value.strip("."):
                continue
            if len(value) > 257:
                raise ValueError(f"Name too long: {value[:40]}...")
            if value.lower() not in seen:
                cleaned.append(value)
                seen.add(value.lower())
        return cleaned

    def matches(self, descriptor: EncryptedObjectDescriptor) -> bool:
        """Whether a descriptor passes the object-name filter."""
        if not self.object_names:
            return True
        wanted = {name.lower() for name in self.object_names}
        return (
            descriptor.name.lower() in wanted
            or descriptor.full_name.lower() in wanted
        )

    @classmethod
    def from_cli(
        cls, databases: Optional[List[str]] = None, object_names: Optional[List[str]] = None
    ) -> "ObjectFilter":
        """Build a filter from repeated or comma-separated CLI values."""

        def split(values: Optional[List[str]]) -> List[str]:
            result: List[str] = []
            for value in values or []:
                result.extend(part for part in value.split(",") if part.strip())
            return result

        return cls(databases=split(databases), object_names=split(object_names))
