# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
The agents module defines the step loops that drive a model through
think -> act -> observe cycles.

An agent owns a bounded conversation memory. Each step sends that memory and
the agent's tool schemas to the model; every tool call the model requests is
resolved through the agent's ToolCollection and answered with exactly one tool
turn before the next request. The loop ends when a tool raises a terminal
signal (e.g. `terminate`), when the step budget runs out (a soft result, not a
fault), or when the model client or the loop itself faults, in which case the
agent moves to the error state and the fault propagates to its caller.

Supervisors and pipelines never share an agent between tasks: each task gets a
fresh loop, and the only shared, concurrently written resource is the log sink.
"""

from .memory import Memory
from .stuck_detector import StuckDetector
from .base_agent import BaseAgent
from .toolcall_agent import ToolCallAgent

__all__ = ["Memory", "StuckDetector", "BaseAgent", "ToolCallAgent"]
