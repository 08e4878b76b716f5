from typing import Optional

from app.schemas.document import Document
from app.services.artifacts.base import DocumentHandler
from app.services.data_stream import DataStream
from app.services.openai_service import openai_service


class ImageDocumentHandler(DocumentHandler):
    kind = "image"

    async def create_content(self, title: str, stream: DataStream) -> str:
        return await self._generate(title, stream)

    async def update_content(self, document: Document, description: str, stream: DataStream) -> str:
        return await self._generate(description, stream)

    async def _generate(self, prompt: str, stream: DataStream) -> str:
        image = await openai_service.generate_image(prompt)
        stream.write_data("image-delta", image)
        return image

    async def summarize(self, content: str) -> Optional[str]:
        # base64 payload, nothing to summarize
        return None
