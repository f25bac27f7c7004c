"""Object registry and lifecycle graph for one connection.

The registry maps GUIDs to the local proxies of remote objects and keeps the
parent/child ownership tree. Only the connection's reader task mutates it.

Invariants:
    - A GUID is registered at most once per connection, even after disposal.
    - Every registered object other than the root has a registered parent,
      so the tree never holds a cycle or a dangling child.
    - Disposal removes the whole subtree, deepest nodes first, before it
      returns.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import TYPE_CHECKING

from playwire.exceptions import ProtocolError
from playwire.logging import get_logger

if TYPE_CHECKING:
    from playwire.channel_owner import ChannelOwner

LOG = get_logger(__name__)

DisposeHook = Callable[["ChannelOwner", "str | None"], None]


class ObjectRegistry:
    """GUID → proxy map with cascading disposal."""

    def __init__(self, on_disposed: DisposeHook | None = None) -> None:
        """Initialize an empty registry.

        Args:
            on_disposed: Called once per disposed object, children before
                their parent, after the object is unreachable via lookup().
        """
        self._objects: dict[str, ChannelOwner] = {}
        self._disposed: set[str] = set()
        self._on_disposed = on_disposed

    def register(self, obj: ChannelOwner) -> None:
        """Add an object under its parent.

        Raises:
            ProtocolError: If the GUID was already used on this connection,
                or the parent is not registered.
        """
        guid = obj.guid
        if guid in self._objects or guid in self._disposed:
            raise ProtocolError(f"Duplicate object guid: {guid!r}")
        parent = obj.parent
        if parent is not None:
            if self._objects.get(parent.guid) is not parent:
                raise ProtocolError(f"Cannot register {guid!r}: unknown parent {parent.guid!r}")
            parent._objects[guid] = obj
        self._objects[guid] = obj

    def lookup(self, guid: str) -> ChannelOwner | None:
        """Return the live object for a GUID, or None."""
        return self._objects.get(guid)

    def was_disposed(self, guid: str) -> bool:
        """Whether the GUID belonged to an object that has been disposed."""
        return guid in self._disposed

    def dispose(self, guid: str, reason: str | None = None) -> list[ChannelOwner]:
        """Dispose an object and all of its descendants.

        Idempotent: unknown or already-disposed GUIDs are a no-op, which
        covers the driver and the client racing on teardown.

        Returns:
            The disposed objects, deepest first.
        """
        obj = self._objects.get(guid)
        if obj is None:
            LOG.debug("dispose_ignored", guid=guid, was_disposed=guid in self._disposed)
            return []
        disposed: list[ChannelOwner] = []
        self._dispose_tree(obj, reason, disposed)
        if obj.parent is not None:
            obj.parent._objects.pop(guid, None)
        return disposed

    def _dispose_tree(
        self,
        obj: ChannelOwner,
        reason: str | None,
        disposed: list[ChannelOwner],
    ) -> None:
        for child in list(obj._objects.values()):
            self._dispose_tree(child, reason, disposed)
        obj._objects.clear()
        del self._objects[obj.guid]
        self._disposed.add(obj.guid)
        disposed.append(obj)
        if self._on_disposed is not None:
            self._on_disposed(obj, reason)

    def adopt(self, new_parent: ChannelOwner, child: ChannelOwner) -> None:
        """Move a registered child under another registered parent.

        Raises:
            ProtocolError: If either object is unknown or the move would
                create a cycle.
        """
        if self._objects.get(new_parent.guid) is not new_parent:
            raise ProtocolError(f"Cannot adopt into unknown parent {new_parent.guid!r}")
        if self._objects.get(child.guid) is not child:
            raise ProtocolError(f"Cannot adopt unknown object {child.guid!r}")
        ancestor: ChannelOwner | None = new_parent
        while ancestor is not None:
            if ancestor is child:
                raise ProtocolError(f"Adopting {child.guid!r} under {new_parent.guid!r} creates a cycle")
            ancestor = ancestor.parent
        old_parent = child.parent
        if old_parent is not None:
            old_parent._objects.pop(child.guid, None)
        new_parent._objects[child.guid] = child
        child._parent = new_parent

    def objects(self) -> Iterator[ChannelOwner]:
        """Iterate over a snapshot of the live objects."""
        return iter(list(self._objects.values()))

    def __contains__(self, guid: object) -> bool:
        return guid in self._objects

    def __len__(self) -> int:
        return len(self._objects)
