import logging
from typing import Optional

from app.database import document_repository
from app.schemas.document import Document
from app.services.ai_actions import generate_document_summary
from app.services.data_stream import DataStream
from app.utils.async_utils import run_sync

logger = logging.getLogger(__name__)


class DocumentHandler:
    """
    Create/update callback pair for one artifact kind.

    Subclasses implement ``create_content`` and ``update_content``; both
    stream deltas to the client and return the final content, which this
    class stores as a new document version with a generated summary.
    """

    kind: str = ""

    async def create_content(self, title: str, stream: DataStream) -> str:
        raise NotImplementedError

    async def update_content(self, document: Document, description: str, stream: DataStream) -> str:
        raise NotImplementedError

    async def on_create_document(
        self,
        document_id: str,
        title: str,
        stream: DataStream,
        user_id: str,
        chat_id: Optional[str] = None,
    ) -> str:
        content = await self.create_content(title, stream)
        await self._save(document_id, title, content, user_id, chat_id)
        return content

    async def on_update_document(
        self,
        document: Document,
        description: str,
        stream: DataStream,
        user_id: str,
        chat_id: Optional[str] = None,
    ) -> str:
        content = await self.update_content(document, description, stream)
        await self._save(document.id, document.title, content, user_id, chat_id or document.chat_id)
        return content

    async def _save(
        self,
        document_id: str,
        title: str,
        content: str,
        user_id: str,
        chat_id: Optional[str],
    ) -> Document:
        summary = await self.summarize(content)
        document = await run_sync(
            document_repository.save_document,
            document_id,
            title,
            self.kind,
            content,
            user_id,
            chat_id,
            summary,
        )
        logger.info(f"Saved {self.kind} document {document_id}")
        return document

    async def summarize(self, content: str) -> Optional[str]:
        if not content:
            return None
        return await generate_document_summary(content, self.kind)
