# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from typing import Optional, Sequence

from ..config import settings
from ..types.llm_types import Message, Role

STUCK_PROMPT = (
    "You appear to be repeating the same response. Change your strategy and try "
    "a different approach, or call the `terminate` tool if the task is done or "
    "cannot be completed."
)


def fingerprint(message: Message) -> str:
    """Content plus requested tool names and arguments."""
    parts = [message.content or ""]
    for tc in message.tool_calls or []:
        parts.append(f"{tc.name}({tc.arguments})")
    return "\x1f".join(parts)


class StuckDetector:
    """
    Flags a loop whose recent assistant turns repeat each other exactly.

    Only a short window of turns is inspected and only exact repeats count,
    so alternating responses can slip through.
    """

    def __init__(
        self,
        window: Optional[int] = None,
        min_assistant_turns: Optional[int] = None,
    ):
        self.window = window if window is not None else settings.STUCK_WINDOW
        self.min_assistant_turns = (
            min_assistant_turns
            if min_assistant_turns is not None
            else settings.STUCK_MIN_REPEATS
        )

    def is_stuck(self, messages: Sequence[Message]) -> bool:
        recent = list(messages)[-self.window :] if self.window > 0 else []
        assistant = [m for m in recent if m.role == Role.ASSISTANT]
        if len(assistant) < self.min_assistant_turns:
            return False
        fingerprints = {fingerprint(m) for m in assistant}
        return len(fingerprints) < len(assistant)
