from app.schemas.document import Document
from app.services.artifacts.base import DocumentHandler
from app.services.artifacts.prompts import update_document_prompt
from app.services.data_stream import DataStream
from app.services.openai_service import openai_service

TEXT_SYSTEM_PROMPT = "Write about the given topic. Markdown is supported. Use headings wherever appropriate."


class TextDocumentHandler(DocumentHandler):
    kind = "text"

    async def create_content(self, title: str, stream: DataStream) -> str:
        return await self._stream(title, TEXT_SYSTEM_PROMPT, stream)

    async def update_content(self, document: Document, description: str, stream: DataStream) -> str:
        return await self._stream(description, update_document_prompt(document.content, self.kind), stream)

    async def _stream(self, prompt: str, system: str, stream: DataStream) -> str:
        draft = ""
        async for delta in openai_service.stream_text(prompt=prompt, system=system):
            draft += delta
            stream.write_data("text-delta", delta)
        return draft
