"""
Keyed undo log shared by the program's components.

Instruction handlers validate before their first effect. The undo log only covers
a collaborator that still refuses midway: while an instruction is open, each
component records the previous value of every key it is about to write, and a
rejected instruction puts those values back in reverse order. Nothing is
recorded outside an instruction, so components used on their own write straight
through.
"""
from contextlib import contextmanager
from typing import Any, Callable, List, MutableMapping, Optional

from pydantic import BaseModel

from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

_MISSING = object()


def _copy(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_copy()
    return value


class UndoLog:
    def __init__(self):
        self._entries: Optional[List[Callable[[], None]]] = None

    @contextmanager
    def transaction(self, name: str):
        """Apply the body in full or undo every recorded write."""
        if self._entries is not None:
            raise RuntimeError(f"Instruction {name} started inside another instruction")
        self._entries = []
        try:
            yield
        except Exception:
            undone = len(self._entries)
            for undo in reversed(self._entries):
                undo()
            logger.debug(f"Instruction {name} rejected, {undone} writes undone")
            raise
        finally:
            self._entries = None

    def record(self, undo: Callable[[], None]) -> None:
        if self._entries is not None:
            self._entries.append(undo)

    def touch(self, mapping: MutableMapping, key: Any) -> None:
        """Remember ``mapping[key]``, or its absence, before it is written."""
        if self._entries is None:
            return
        previous = _copy(mapping.get(key, _MISSING))

        def undo():
            if previous is _MISSING:
                mapping.pop(key, None)
            else:
                mapping[key] = previous

        self._entries.append(undo)

    def touch_attr(self, obj: Any, name: str) -> None:
        if self._entries is None:
            return
        previous = _copy(getattr(obj, name))
        self._entries.append(lambda: setattr(obj, name, previous))
