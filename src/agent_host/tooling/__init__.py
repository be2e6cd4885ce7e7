"""Tool definitions exposed to the agent runtime."""

from .models import Tool, ToolExecutor, ToolResult

__all__ = ["Tool", "ToolExecutor", "ToolResult"]
