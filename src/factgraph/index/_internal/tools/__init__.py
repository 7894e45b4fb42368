"""External analysis tool integration."""

from factgraph.index._internal.tools.manager import (
    CodeQLTool,
    ToolResult,
    find_codeql,
)

__all__ = [
    "CodeQLTool",
    "ToolResult",
    "find_codeql",
]
