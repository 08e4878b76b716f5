"""
Document handlers keyed by artifact kind.
"""
from typing import Dict

from app.core.exceptions import ValidationError
from app.services.artifacts.base import DocumentHandler
from app.services.artifacts.code import CodeDocumentHandler
from app.services.artifacts.image import ImageDocumentHandler
from app.services.artifacts.sheet import SheetDocumentHandler
from app.services.artifacts.text import TextDocumentHandler

document_handlers: Dict[str, DocumentHandler] = {
    handler.kind: handler
    for handler in (
        TextDocumentHandler(),
        CodeDocumentHandler(),
        ImageDocumentHandler(),
        SheetDocumentHandler(),
    )
}


def get_document_handler(kind: str) -> DocumentHandler:
    handler = document_handlers.get(kind)
    if handler is None:
        raise ValidationError(f"No document handler found for kind: {kind}")
    return handler


__all__ = ["DocumentHandler", "document_handlers", "get_document_handler"]
