"""
Scope tracking for the fluent builder.

A :class:`ScopeCursor` remembers where in the site → web → list → item
hierarchy the fluent chain currently is, and a :class:`ResourceCache`
remembers lists that have already been resolved by name.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import TYPE_CHECKING

from fluentsp.lib.error import NotFoundError, PreconditionError

if TYPE_CHECKING:
    from fluentsp.objects import ClientObject, ItemCollection, SPList, Web


class ScopeLevel(IntEnum):
    """Containment depth, ordered from the outermost to the innermost."""

    SITE = 0
    WEB = 1
    LIST = 2
    ITEM = 3


@dataclass
class ScopeCursor:
    """The currently selected object and its level.

    The last selected web, list and item collection are kept separately,
    so that list-level operations keep working after descending to the
    item level.

    Attributes:
        level: How deep the fluent chain currently is.
        web: The last selected web, or ``None`` before any web was decided.
        list: The last selected list.
        items: The last resolved item collection.
    """

    level: ScopeLevel = ScopeLevel.SITE
    web: Web | None = None
    list: SPList | None = None
    items: ItemCollection | None = None

    @property
    def current(self) -> ClientObject | None:
        """The object selected at the current level."""
        return {
            ScopeLevel.SITE: None,
            ScopeLevel.WEB: self.web,
            ScopeLevel.LIST: self.list,
            ScopeLevel.ITEM: self.items,
        }[self.level]

    def require(self, level: ScopeLevel) -> None:
        """Raise :class:`PreconditionError` unless the cursor is at ``level`` or deeper."""
        if self.level < level:
            raise PreconditionError(required=level, current=self.level)

    def set_level(self, level: ScopeLevel, obj: ClientObject) -> None:
        """Select ``obj`` as the object at ``level``.

        Selecting a web forgets the list and items selected under the
        previous web, selecting a list forgets the previous items.
        """
        if level == ScopeLevel.WEB:
            self.web = obj
            self.list = None
            self.items = None
        elif level == ScopeLevel.LIST:
            self.list = obj
            self.items = None
        elif level == ScopeLevel.ITEM:
            self.items = obj
        else:
            raise ValueError(f"cannot select an object at {level.name} level")
        self.level = level


class ResourceCache:
    """Lists resolved by this builder, keyed by the exact name they were
    loaded or created with.

    Nothing is ever evicted, except lists deleted by a drained Delete
    action (see :meth:`forget`).
    """

    def __init__(self) -> None:
        self._lists: dict[str, SPList] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._lists

    def __len__(self) -> int:
        return len(self._lists)

    def remember(self, name: str, lst: SPList) -> None:
        self._lists[name] = lst

    def recall(self, name: str) -> SPList:
        try:
            return self._lists[name]
        except KeyError:
            raise NotFoundError(name=name, reason=f"list {name!r} has not been loaded or created")

    def forget(self, title: str) -> list[SPList]:
        """Drop every entry holding a list titled ``title``.

        Returns the dropped handles.
        """
        dropped = [
            name for name, lst in self._lists.items() if name == title or lst.title == title
        ]
        return [self._lists.pop(name) for name in dropped]
