"""
Assembles streaming tool-call deltas into complete ToolCallRequest objects.

Accumulation is kept as an ordered list of slots plus a pointer to the slot
opened most recently:

  - A delta carrying an ``id`` opens a new slot (a repeat of the current
    slot's id continues it instead).
  - A delta without ``id`` continues the current slot: its name and
    argument text are appended.
  - A continuation arriving before any slot was opened is discarded.

Fragments of different calls must not interleave; a provider resuming an
older call after starting a newer one is not supported.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from kubeassist.llm.types import ToolCallDelta, ToolCallRequest

logger = logging.getLogger(__name__)


@dataclass
class _Slot:
    id: str
    name_parts: list[str] = field(default_factory=list)
    args_parts: list[str] = field(default_factory=list)

    def freeze(self) -> ToolCallRequest:
        return ToolCallRequest(
            id=self.id,
            name="".join(self.name_parts),
            arguments="".join(self.args_parts),
        )


class ToolCallAssembler:
    """Buffers raw tool-call deltas for one round."""

    def __init__(self) -> None:
        self._slots: list[_Slot] = []
        self._current: _Slot | None = None
        self.discarded = 0

    def feed(self, delta: ToolCallDelta) -> None:
        if delta.id and (self._current is None or delta.id != self._current.id):
            self._current = _Slot(id=delta.id)
            self._slots.append(self._current)
        elif self._current is None:
            self.discarded += 1
            logger.debug(
                "dropping tool-call fragment with no open call: name=%r args=%r",
                delta.name_delta,
                delta.args_delta[:80],
            )
            return

        if delta.name_delta:
            self._current.name_parts.append(delta.name_delta)
        if delta.args_delta:
            self._current.args_parts.append(delta.args_delta)

    def calls(self) -> list[ToolCallRequest]:
        """Frozen calls in the order they were first started."""
        return [slot.freeze() for slot in self._slots]

    def reset(self) -> None:
        self._slots.clear()
        self._current = None
        self.discarded = 0

    def __len__(self) -> int:
        return len(self._slots)
