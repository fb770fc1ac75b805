# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
A module of Agent tools
"""

from .base_tool import BaseTool, ToolCollection, tool_registry
from .file_tools import (
    ReadFile,
    WriteFile,
    EditFile,
    ListDirectory,
    CreateDirectory,
    DeleteFile,
    SearchFiles,
)
from .execute_command import Bash, PythonExecute, NodeExecute, Git, Npm
from .web_tools import WebSearch, WebFetch, HttpRequest
from .base_agent_tools import Terminate, Planning, AskHuman, Think

toolkits: dict[str, list[type[BaseTool]]] = dict(
    coding=[
        ReadFile,
        WriteFile,
        EditFile,
        ListDirectory,
        CreateDirectory,
        DeleteFile,
        SearchFiles,
        Bash,
        PythonExecute,
        NodeExecute,
        Git,
        Npm,
    ],
    web=[WebSearch, WebFetch, HttpRequest],
    general=[
        WebSearch,
        WebFetch,
        HttpRequest,
        PythonExecute,
        ReadFile,
        WriteFile,
        ListDirectory,
        SearchFiles,
    ],
    control=[Terminate, Planning, AskHuman, Think],
)
