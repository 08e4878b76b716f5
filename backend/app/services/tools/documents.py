"""
Artifact tools: create and update documents, request writing suggestions.
"""
import logging
import uuid
from typing import Any, Dict, List

from pydantic import BaseModel, Field

from app.database import document_repository
from app.database.documents import EDIT_ROLES
from app.schemas.document import ArtifactKind, SuggestionDraft
from app.services.artifacts import get_document_handler
from app.services.openai_service import openai_service
from app.services.tools.base import Tool
from app.utils.async_utils import run_sync

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5

SUGGESTIONS_SYSTEM_PROMPT = (
    "You are a help writing assistant. Given a piece of writing, please offer suggestions "
    "to improve the piece of writing and describe the change. It is very important for the "
    "edits to contain full sentences instead of just words. Max 5 suggestions. "
    'Respond with a JSON object {"suggestions": [{"original_sentence": "...", '
    '"suggested_sentence": "...", "description": "..."}]}.'
)


class CreateDocumentArgs(BaseModel):
    title: str
    kind: ArtifactKind


class UpdateDocumentArgs(BaseModel):
    id: str = Field(..., description="The ID of the document to update")
    description: str = Field(..., description="The description of changes that need to be made")


class RequestSuggestionsArgs(BaseModel):
    document_id: str = Field(..., description="The ID of the document to request edits")


class CreateDocumentTool(Tool):
    name = "create_document"
    description = (
        "Create a document for a writing or content creation activities. This tool will call other "
        "functions that will generate the contents of the document based on the title and kind."
    )
    args_model = CreateDocumentArgs

    async def execute(self, args: CreateDocumentArgs) -> Dict[str, Any]:
        stream = self.context.stream
        document_id = str(uuid.uuid4())

        stream.write_data("kind", args.kind)
        stream.write_data("id", document_id)
        stream.write_data("title", args.title)
        stream.write_data("clear", "")

        handler = get_document_handler(args.kind)
        await handler.on_create_document(
            document_id, args.title, stream, self.context.user.id, self.context.chat_id
        )
        stream.write_data("finish", "")

        return {
            "id": document_id,
            "title": args.title,
            "kind": args.kind,
            "content": "A document was created and is now visible to the user.",
        }


class UpdateDocumentTool(Tool):
    name = "update_document"
    description = "Update a document with the given description."
    args_model = UpdateDocumentArgs

    async def execute(self, args: UpdateDocumentArgs) -> Dict[str, Any]:
        document = await run_sync(document_repository.get_document_by_id, args.id)
        if not document:
            return {"error": "Document not found"}

        stream = self.context.stream
        stream.write_data("clear", document.title)

        handler = get_document_handler(document.kind)
        await handler.on_update_document(
            document, args.description, stream, self.context.user.id, self.context.chat_id
        )
        stream.write_data("finish", "")

        return {
            "id": args.id,
            "title": document.title,
            "kind": document.kind,
            "content": "The document has been updated successfully.",
        }


class RequestSuggestionsTool(Tool):
    name = "request_suggestions"
    description = "Request suggestions for a document"
    args_model = RequestSuggestionsArgs

    async def execute(self, args: RequestSuggestionsArgs) -> Dict[str, Any]:
        document = await run_sync(document_repository.get_document_by_id, args.document_id)
        if not document or not document.content:
            return {"error": "Document not found"}

        user_id = self.context.user.id
        if not await run_sync(document_repository.has_document_access, document.id, user_id, EDIT_ROLES):
            return {"error": "Unauthorized to request suggestions for this document"}

        result = await openai_service.generate_json(prompt=document.content, system=SUGGESTIONS_SYSTEM_PROMPT)

        suggestions: List[SuggestionDraft] = []
        for element in (result.get("suggestions") or [])[:MAX_SUGGESTIONS]:
            if not element.get("original_sentence") or not element.get("suggested_sentence"):
                continue
            suggestion = SuggestionDraft(
                id=str(uuid.uuid4()),
                document_id=document.id,
                original_text=element["original_sentence"],
                suggested_text=element["suggested_sentence"],
                description=element.get("description"),
            )
            self.context.stream.write_data("suggestion", suggestion.model_dump())
            suggestions.append(suggestion)

        if suggestions:
            await run_sync(document_repository.save_suggestions, suggestions, document.created_at, user_id)
        logger.info(f"Added {len(suggestions)} suggestions to document {document.id}")

        return {
            "id": document.id,
            "title": document.title,
            "kind": document.kind,
            "message": "Suggestions have been added to the document",
        }
