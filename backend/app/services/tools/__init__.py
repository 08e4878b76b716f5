"""
Tools exposed to the chat model, built per chat turn.
"""
from typing import Dict

from app.services.tools.base import Tool, ToolContext
from app.services.tools.communication import CallPhoneTool, SendEmailTool
from app.services.tools.documents import CreateDocumentTool, RequestSuggestionsTool, UpdateDocumentTool
from app.services.tools.memory import RetrieveMemoryTool, StoreMemoryTool
from app.services.tools.planning import PlanTaskTool
from app.services.tools.web import ScrapeWebsiteTool, SearchWebTool

TOOL_CLASSES = (
    PlanTaskTool,
    RetrieveMemoryTool,
    StoreMemoryTool,
    SearchWebTool,
    ScrapeWebsiteTool,
    SendEmailTool,
    CallPhoneTool,
    CreateDocumentTool,
    UpdateDocumentTool,
    RequestSuggestionsTool,
)


def get_tools(context: ToolContext) -> Dict[str, Tool]:
    return {tool_cls.name: tool_cls(context) for tool_cls in TOOL_CLASSES}


__all__ = ["Tool", "ToolContext", "TOOL_CLASSES", "get_tools"]
