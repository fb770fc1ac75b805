# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Tests for the bounded conversation memory."""
import pytest

from dsc_agent.src.agents.memory import Memory
from dsc_agent.src.types.llm_types import Message, Role


class TestMemory:
    def test_rejects_non_positive_bound(self):
        with pytest.raises(ValueError):
            Memory(max_messages=0)

    def test_append_preserves_order(self):
        memory = Memory(max_messages=10)
        memory.append(Message.system("sys")).append(Message.user("a"))
        memory.append(Message.assistant("b"))
        assert [m.content for m in memory] == ["sys", "a", "b"]
        assert len(memory) == 3

    def test_eviction_never_exceeds_bound(self):
        memory = Memory(max_messages=5)
        for i in range(20):
            memory.append(Message.user(f"u{i}"))
            assert len(memory) <= 5
        assert [m.content for m in memory] == ["u15", "u16", "u17", "u18", "u19"]

    def test_eviction_keeps_system_turns(self):
        memory = Memory(max_messages=4)
        memory.append(Message.system("first system"))
        for i in range(3):
            memory.append(Message.user(f"u{i}"))
        memory.append(Message.system("second system"))
        memory.extend(Message.user(f"v{i}") for i in range(5))

        roles = [m.role for m in memory]
        contents = [m.content for m in memory]
        assert len(memory) == 4
        assert "first system" in contents
        assert "second system" in contents
        assert roles.count(Role.SYSTEM) == 2
        # The newest turns survive
        assert contents[-1] == "v4"
        assert contents[-2] == "v3"

    def test_recent_and_clear(self):
        memory = Memory(max_messages=10)
        memory.extend([Message.user("a"), Message.user("b"), Message.user("c")])
        assert [m.content for m in memory.recent(2)] == ["b", "c"]
        assert memory.recent(0) == []
        memory.clear()
        assert len(memory) == 0

    def test_all_returns_a_copy(self):
        memory = Memory()
        memory.append(Message.user("a"))
        snapshot = memory.all()
        snapshot.append(Message.user("b"))
        assert len(memory) == 1

    def test_remove_drops_matching_turns(self):
        memory = Memory(max_messages=10)
        memory.extend([Message.system("keep"), Message.system("nudge"), Message.user("a")])
        memory.append(Message.system("nudge"))

        assert memory.remove(lambda m: m.content == "nudge") == 2
        assert [m.content for m in memory] == ["keep", "a"]
        assert memory.remove(lambda m: m.content == "nudge") == 0
