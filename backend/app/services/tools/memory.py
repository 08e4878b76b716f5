import logging
from typing import Optional

from pydantic import BaseModel, Field

from app.services.ai_actions import summarize_messages
from app.services.memory_service import memory_service
from app.services.openai_service import openai_service
from app.services.tools.base import Tool

logger = logging.getLogger(__name__)

MERGE_SIMILARITY = 0.7

RETRIEVE_CONTEXT_PROMPT = (
    "Summarize the conversation focusing on key topics, decisions, and important details from this user:"
)
STORE_DEFAULT_PROMPT = (
    "Extract new, important information from this user that would be valuable to remember "
    "for future interactions."
)
MERGE_SYSTEM_PROMPT = (
    "You are a memory consolidation assistant. Your task is to merge two pieces of information "
    "about the same topic, ensuring no important details are lost while avoiding redundancy."
)


async def merge_memories(existing_memory: str, new_memory: str) -> str:
    return await openai_service.generate_text(
        prompt=(
            "Merge these two pieces of information about the same topic. Keep all unique and important "
            "details while removing redundant information. If there are conflicting details, prefer "
            f"the newer information.\n\nExisting memory:\n{existing_memory}\n\n"
            f"New memory:\n{new_memory}\n\nMerged memory:"
        ),
        system=MERGE_SYSTEM_PROMPT,
    )


class RetrieveMemoryArgs(BaseModel):
    query: str = Field(..., description="A detailed query describing what information you are looking for.")


class StoreMemoryArgs(BaseModel):
    prompt: Optional[str] = Field(None, description="Optional prompt to guide what information should be stored")


class RetrieveMemoryTool(Tool):
    name = "retrieve_memory"
    description = "Retrieve relevant memories from previous conversations based on the current context"
    args_model = RetrieveMemoryArgs

    async def execute(self, args: RetrieveMemoryArgs) -> str:
        current_context = await summarize_messages(self.context.chat_id, RETRIEVE_CONTEXT_PROMPT)
        enhanced_query = f"{args.query}\n\nCurrent context:\n{current_context}"

        relevant = await memory_service.find_relevant_content(enhanced_query, self.context.user.id)
        if not relevant:
            return "No relevant memories found."

        memories = "\n\n".join(item.content for item in relevant)
        return f"Current context:\n{current_context}\n\nRelevant memories:\n{memories}"


class StoreMemoryTool(Tool):
    name = "store_memory"
    description = "Store important information from the current conversation for future reference"
    args_model = StoreMemoryArgs

    async def execute(self, args: StoreMemoryArgs) -> str:
        user_id = self.context.user.id
        new_memory = await summarize_messages(self.context.chat_id, args.prompt or STORE_DEFAULT_PROMPT)

        existing = await memory_service.find_relevant_content(new_memory, user_id, limit=1)
        if existing and existing[0].similarity > MERGE_SIMILARITY:
            merged = await merge_memories(existing[0].content, new_memory)
            await memory_service.create_resource(user_id, merged)
            logger.info(f"Merged memory for user {user_id} (similarity {existing[0].similarity})")
            return f"Updated existing memory with new information: {merged}"

        await memory_service.create_resource(user_id, new_memory)
        return f"Memory stored: {new_memory}"
