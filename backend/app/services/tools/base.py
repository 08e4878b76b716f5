import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Type

from pydantic import BaseModel

from app.schemas.chat import ChatMessageIn
from app.schemas.user import User
from app.services.data_stream import DataStream

logger = logging.getLogger(__name__)


@dataclass
class ToolContext:
    """What a tool can see of the chat turn that invoked it."""
    user: User
    chat_id: str
    stream: DataStream
    messages: List[ChatMessageIn] = field(default_factory=list)


class Tool:
    """
    A function the chat model can call.

    ``args_model`` describes the arguments; its JSON schema is what the model
    sees. ``execute`` receives the validated arguments and returns anything
    JSON serializable.
    """

    name: str = ""
    description: str = ""
    args_model: Type[BaseModel] = BaseModel

    def __init__(self, context: ToolContext):
        self.context = context

    def schema(self) -> Dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.args_model.model_json_schema(),
            },
        }

    async def run(self, arguments: str) -> Any:
        args = self.args_model.model_validate(json.loads(arguments or "{}"))
        logger.debug(f"Running tool {self.name} for chat {self.context.chat_id}")
        return await self.execute(args)

    async def execute(self, args: Any) -> Any:
        raise NotImplementedError
