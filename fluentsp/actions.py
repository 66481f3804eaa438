"""
Deferred actions and their execution.

The builder never talks to the server when a deferrable call is made.
It appends a :class:`DeferredAction` to a :class:`DeferredActionQueue`,
and an :class:`Executor` later sends the whole queue to the remote client
in one batch.  The queue is only cleared once the batch has succeeded.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator

from fluentsp.lib import error

if TYPE_CHECKING:
    from fluentsp.client import RemoteClient
    from fluentsp.objects import ClientObject

log = logging.getLogger("fluentsp")


class ActionKind(Enum):
    LOAD = "Load"
    DELETE = "Delete"
    UPDATE = "Update"
    CREATE = "Create"


@dataclass(frozen=True)
class DeferredAction:
    """A recorded intent to act on ``target`` once the queue is drained.

    The target is borrowed; it is owned by whoever created the handle.
    """

    target: ClientObject
    kind: ActionKind

    def __repr__(self) -> str:
        return "%s(%r)" % (self.kind.value, self.target)


class DeferredActionQueue:
    """FIFO of deferred actions, append-only until drained."""

    def __init__(self) -> None:
        self._actions: deque[DeferredAction] = deque()

    def enqueue(self, target: ClientObject, kind: ActionKind) -> DeferredAction:
        action = DeferredAction(target=target, kind=kind)
        self._actions.append(action)
        log.debug("queued %r, %d action(s) pending", action, len(self._actions))
        return action

    def snapshot(self) -> tuple[DeferredAction, ...]:
        return tuple(self._actions)

    def clear(self) -> None:
        self._actions.clear()

    def drop(self, count: int) -> None:
        """Remove the ``count`` oldest actions."""
        for _ in range(min(count, len(self._actions))):
            self._actions.popleft()

    def __iter__(self) -> Iterator[DeferredAction]:
        return iter(self.snapshot())

    def __len__(self) -> int:
        return len(self._actions)

    def __bool__(self) -> bool:
        return bool(self._actions)


def apply_result(action: DeferredAction, result: Any) -> None:
    """Make the outcome of a sent action visible on its target."""
    target = action.target
    if action.kind in (ActionKind.LOAD, ActionKind.CREATE):
        target._populate(result)
    elif action.kind == ActionKind.UPDATE:
        target._merge_changes()
    elif action.kind == ActionKind.DELETE:
        ## Item collections resolved during the drain come back with their rows
        if result is not None:
            target._populate(result)
        target._invalidate()
    else:
        raise ValueError(f"unknown action kind {action.kind!r}")


class Executor:
    """Drains a :class:`DeferredActionQueue` against a remote client."""

    def __init__(self, client: RemoteClient) -> None:
        self.client = client

    def drain(
        self, queue: DeferredActionQueue, *reads: DeferredAction
    ) -> tuple[DeferredAction, ...]:
        """Send every queued action in one batch, then clear the queue.

        Args:
            queue: The queue to drain.
            reads: Actions sent after the queued ones in the same batch
                without ever being queued, i.e. the item query of a read.

        Returns:
            The actions that were applied, in the order they were sent.

        Raises:
            BatchExecutionError: If the batch failed.  Actions the server
                reported as applied (see ``BatchExecutionError.results``)
                are applied locally and dropped from the queue, and listed
                in the error's ``applied``.  The rest stays queued, so the
                drain may simply be attempted again.
            NotFoundError: If the server reported a target as missing.
                The queue is left untouched.
        """
        actions = queue.snapshot() + reads
        if not actions:
            return ()

        log.debug("draining %d deferred action(s)", len(actions))
        try:
            results = self.client.execute_batch(actions)
        except error.BatchExecutionError as e:
            if e.results:
                applied = actions[: len(e.results)]
                for action, result in zip(applied, e.results):
                    apply_result(action, result)
                queue.drop(len(applied))
                e.applied = applied
                log.debug("%d action(s) applied before the failure", len(applied))
            raise
        if len(results) != len(actions):
            raise error.BatchExecutionError(
                reason=f"got {len(results)} result(s) for {len(actions)} action(s)"
            )

        for action, result in zip(actions, results):
            apply_result(action, result)
        queue.clear()
        return actions
