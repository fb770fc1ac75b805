# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.


class AgentError(Exception):
    """Base class for faults raised by the agent loop."""


class AgentStateError(AgentError):
    """The loop was asked to do something its current state does not allow,
    e.g. `run` on a loop that is not idle."""


class ToolProtocolError(AgentError):
    """A model request was about to be sent while tool calls of the previous
    assistant turn were still unanswered."""

    def __init__(self, unanswered: list[str]):
        self.unanswered = unanswered
        super().__init__(
            f"Unanswered tool calls before next model request: {', '.join(unanswered)}"
        )
