"""
Column definitions.

:class:`FieldSpec` describes a column to be added to a list and renders
the ``<Field/>`` schema XML SharePoint expects.  :class:`FieldPatch`
describes a partial change to an existing column: every attribute is
optional, and only the ones that are set are sent.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Optional

from lxml import etree


class FieldType(Enum):
    """SharePoint field type tags, as used in ``TypeAsString``."""

    TEXT = "Text"
    NOTE = "Note"
    NUMBER = "Number"
    INTEGER = "Integer"
    BOOLEAN = "Boolean"
    DATETIME = "DateTime"
    CHOICE = "Choice"
    MULTICHOICE = "MultiChoice"
    CURRENCY = "Currency"
    URL = "URL"
    USER = "User"
    LOOKUP = "Lookup"
    COUNTER = "Counter"
    GUID = "Guid"
    CALCULATED = "Calculated"

    @classmethod
    def objectify(cls, value: "FieldType | str") -> "FieldType":
        """Accept a FieldType, its tag ("Number") or its name ("NUMBER")."""
        if isinstance(value, FieldType):
            return value
        try:
            return cls(value)
        except ValueError:
            pass
        try:
            return cls[value.upper()]
        except KeyError:
            raise ValueError(f"unknown field type {value!r}") from None


## AddFieldOptions.AddFieldInternalNameHint | AddFieldOptions.AddFieldToDefaultView
ADD_FIELD_OPTIONS = 8 | 16


def _xml_bool(value: bool) -> str:
    return "TRUE" if value else "FALSE"


@dataclass(frozen=True)
class FieldSpec:
    """A column to add to a list.

    Attributes:
        internal_name: Internal (static) name of the column.
        display_name: Title shown to users; defaults to ``internal_name``.
        type: The field type.
        required: Whether a value is required.
        unique_values: Whether values must be unique within the list.
    """

    internal_name: str
    type: FieldType
    display_name: str = ""
    required: bool = False
    unique_values: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "type", FieldType.objectify(self.type))
        if not self.display_name:
            object.__setattr__(self, "display_name", self.internal_name)

    def to_xml(self) -> str:
        """Render the ``<Field/>`` schema XML for ``createfieldasxml``."""
        attributes = {
            "Name": self.internal_name,
            "StaticName": self.internal_name,
            "DisplayName": self.display_name,
            "Type": self.type.value,
            "Required": _xml_bool(self.required),
        }
        if self.unique_values:
            ## Unique values are only allowed on indexed columns
            attributes["EnforceUniqueValues"] = "TRUE"
            attributes["Indexed"] = "TRUE"
        return etree.tostring(etree.Element("Field", attributes), encoding="unicode")


## FieldPatch attribute -> SP.Field property
_PATCH_PROPERTIES = {
    "type": "TypeAsString",
    "display_name": "Title",
    "required": "Required",
    "unique_values": "EnforceUniqueValues",
}


@dataclass(frozen=True)
class FieldPatch:
    """A partial change to an existing column.

    Attributes left as ``None`` leave the remote property untouched.  An
    empty display name counts as unset.
    """

    type: Optional[FieldType] = None
    display_name: Optional[str] = None
    required: Optional[bool] = None
    unique_values: Optional[bool] = None

    def __post_init__(self) -> None:
        if self.type is not None:
            object.__setattr__(self, "type", FieldType.objectify(self.type))
        if self.display_name == "":
            object.__setattr__(self, "display_name", None)

    def to_properties(self) -> dict:
        """The SP.Field properties to merge, one per attribute that is set."""
        properties = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            if isinstance(value, FieldType):
                value = value.value
            properties[_PATCH_PROPERTIES[f.name]] = value
        if properties.get("EnforceUniqueValues"):
            properties["Indexed"] = True
        return properties

    def __bool__(self) -> bool:
        return any(getattr(self, f.name) is not None for f in fields(self))
