"""Per-slot cache of computed views with freshness tracking."""

from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from worklog.engine.types import FilterCriteria, RollupName, SlotState, View

logger = logging.getLogger(__name__)

SlotKey = tuple[RollupName, str]


@dataclass(slots=True)
class CacheSlot:
    criteria: FilterCriteria
    value: View
    state: SlotState
    computed_at: datetime


@dataclass(frozen=True, slots=True)
class CacheLookup:
    state: SlotState
    value: View | None = None


class ViewCache:
    """Holds the latest computed view per (rollup name, filter signature).

    Slots move absent -> fresh -> stale -> fresh. A stale slot keeps its
    criteria so it can be recomputed, but never hands out its value. The cache
    is bounded; the least recently used slot is evicted back to absent.
    """

    def __init__(self, *, max_slots: int = 256) -> None:
        if max_slots < 1:
            raise ValueError("max_slots must be at least 1.")
        self.max_slots = max_slots
        self._slots: OrderedDict[SlotKey, CacheSlot] = OrderedDict()

    def __len__(self) -> int:
        return len(self._slots)

    def get(self, name: RollupName, signature: str) -> CacheLookup:
        key = (RollupName(name), signature)
        slot = self._slots.get(key)
        if slot is None:
            logger.debug("View cache miss for %s %s", name, signature)
            return CacheLookup(SlotState.ABSENT)
        self._slots.move_to_end(key)
        if slot.state is SlotState.STALE:
            logger.debug("View cache stale for %s %s", name, signature)
            return CacheLookup(SlotState.STALE)
        logger.debug("View cache hit for %s %s", name, signature)
        return CacheLookup(SlotState.FRESH, slot.value)

    def put(self, name: RollupName, signature: str, criteria: FilterCriteria, value: View) -> None:
        key = (RollupName(name), signature)
        self._slots[key] = CacheSlot(
            criteria=criteria,
            value=value,
            state=SlotState.FRESH,
            computed_at=datetime.now(timezone.utc),
        )
        self._slots.move_to_end(key)
        while len(self._slots) > self.max_slots:
            evicted, _ = self._slots.popitem(last=False)
            logger.debug("Evicted view cache slot %s", evicted)

    def invalidate(self, names: Iterable[RollupName]) -> int:
        """Mark every slot under ``names`` stale, whatever its signature."""

        targets = {RollupName(name) for name in names}
        count = 0
        for (name, _), slot in self._slots.items():
            if name in targets and slot.state is SlotState.FRESH:
                slot.state = SlotState.STALE
                count += 1
        return count

    def stale_slots(self, names: Iterable[RollupName] | None = None) -> list[tuple[RollupName, FilterCriteria]]:
        targets = None if names is None else {RollupName(name) for name in names}
        return [
            (name, slot.criteria)
            for (name, _), slot in self._slots.items()
            if slot.state is SlotState.STALE and (targets is None or name in targets)
        ]

    def state_of(self, name: RollupName, signature: str) -> SlotState:
        slot = self._slots.get((RollupName(name), signature))
        return SlotState.ABSENT if slot is None else slot.state

    def states(self) -> dict[SlotKey, SlotState]:
        return {key: slot.state for key, slot in self._slots.items()}
