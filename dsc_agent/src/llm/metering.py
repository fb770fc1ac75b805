# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
from typing import DefaultDict
from collections import defaultdict

from .models import ModelInfo, get_model
from ..types.llm_types import TokenUsage


class UsageMeter:
    """
    A mapping from model ids to token usage and dollar cost.

    Each supervisor or pipeline owns its own meter; there is no global one.
    """

    def __init__(self):
        self.token_meter: DefaultDict[str, TokenUsage] = defaultdict(TokenUsage)
        self.call_count = 0

    def record(self, model: ModelInfo | str, usage: TokenUsage) -> None:
        model_id = model if isinstance(model, str) else model.id
        self.token_meter[model_id] += usage
        self.call_count += 1

    def get_total_usage(self) -> TokenUsage:
        usage = TokenUsage()
        for model_usage in self.token_meter.values():
            usage += model_usage
        return usage

    def get_total_cost(self) -> float:
        total = 0.0
        for model_id, usage in self.token_meter.items():
            model = get_model(model_id)
            if model is not None:
                total += model.calculate_cost(usage)
        return total

    def clear(self) -> None:
        self.token_meter.clear()
        self.call_count = 0
