from app.schemas.document import Document
from app.services.artifacts.base import DocumentHandler
from app.services.artifacts.prompts import CODE_PROMPT, update_document_prompt
from app.services.data_stream import DataStream
from app.services.openai_service import openai_service


class CodeDocumentHandler(DocumentHandler):
    kind = "code"

    async def create_content(self, title: str, stream: DataStream) -> str:
        return await self._generate(title, CODE_PROMPT, stream)

    async def update_content(self, document: Document, description: str, stream: DataStream) -> str:
        system = update_document_prompt(document.content, self.kind) + CODE_PROMPT
        return await self._generate(description, system, stream)

    async def _generate(self, prompt: str, system: str, stream: DataStream) -> str:
        result = await openai_service.generate_json(prompt=prompt, system=system)
        code = result.get("code") or ""
        if code:
            stream.write_data("code-delta", code)
        return code
