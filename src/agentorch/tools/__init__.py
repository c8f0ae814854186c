"""Concrete tools usable with the orchestrator."""

from agentorch.tools.claude import ClaudeTools
from agentorch.tools.code_exec import CodeExecTool

__all__ = ["ClaudeTools", "CodeExecTool"]
