# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Bounded conversation memory for one agent loop."""

import logging

from typing import Callable, Iterable, Iterator

from ..types.llm_types import Message, Role

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


class Memory:
    """
    An ordered log of turns with a maximum length.

    When an append takes the log past `max_messages`, the oldest non-system
    turns are evicted; system turns are never removed. Old tool output is
    therefore not guaranteed to remain in memory once the bound is exceeded.
    """

    def __init__(self, max_messages: int = 100):
        if max_messages < 1:
            raise ValueError("max_messages must be at least 1")
        self.max_messages = max_messages
        self._messages: list[Message] = []

    def append(self, message: Message) -> "Memory":
        self._messages.append(message)
        if len(self._messages) > self.max_messages:
            self._evict()
        return self

    def extend(self, messages: Iterable[Message]) -> "Memory":
        for message in messages:
            self.append(message)
        return self

    def _evict(self) -> None:
        system_count = sum(1 for m in self._messages if m.role == Role.SYSTEM)
        keep_other = max(self.max_messages - system_count, 0)

        other_seen = sum(1 for m in self._messages if m.role != Role.SYSTEM)
        to_drop = other_seen - keep_other

        kept = []
        for m in self._messages:
            if m.role != Role.SYSTEM and to_drop > 0:
                to_drop -= 1
                continue
            kept.append(m)

        logger.debug(f"Evicted {len(self._messages) - len(kept)} turns from memory")
        self._messages = kept

    def remove(self, predicate: Callable[[Message], bool]) -> int:
        """Drop every turn matching `predicate`, system turns included."""
        kept = [m for m in self._messages if not predicate(m)]
        removed = len(self._messages) - len(kept)
        self._messages = kept
        return removed

    def recent(self, n: int) -> list[Message]:
        if n <= 0:
            return []
        return list(self._messages[-n:])

    def all(self) -> list[Message]:
        return list(self._messages)

    def clear(self) -> None:
        self._messages.clear()

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))
