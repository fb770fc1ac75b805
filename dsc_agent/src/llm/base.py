# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""Typed failures raised by the model client."""

from typing import Optional


class LLMError(Exception):
    """Base class for model client failures."""

    def __init__(self, message: str, provider: Optional[str] = None):
        self.message = message
        self.provider = provider
        super().__init__(message)


class LLMConfigError(LLMError):
    """The client cannot be built, e.g. the API key is missing."""


class LLMStatusError(LLMError):
    """The endpoint answered with a non-success status."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
    ):
        self.status_code = status_code
        super().__init__(message, provider=provider)

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.message} (status {self.status_code})"
        return self.message


class LLMConnectionError(LLMError):
    """The endpoint could not be reached."""


class LLMTimeoutError(LLMConnectionError):
    """The request did not complete within the client timeout."""


def extract_error_message(body: object, default: str) -> str:
    """Pull `error.message` out of an error response body when present."""
    if isinstance(body, dict):
        error = body.get("error", body)
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if body.get("message"):
            return str(body["message"])
    return default
