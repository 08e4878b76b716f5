"""
Long-term user memory.

Memories are stored as resources with one embedding per chunk. Lookups
build a FAISS inner-product index over the user's normalized vectors, so
scores are cosine similarities.
"""
import logging
import re
from typing import Iterator, List, Tuple

import faiss
import numpy as np

from app.database import memory_repository
from app.schemas.memory import RelevantContent, Resource
from app.services.openai_service import openai_service
from app.utils.async_utils import execute_with_retry, run_sync

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.5
DEFAULT_LIMIT = 5
MAX_CHUNK_LENGTH = 2000

HEADING_RE = re.compile(r"^(#{1,6})\s+(.*?)(?:\s+#+)?\s*$")
LIST_ITEM_RE = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(.*)$")
FENCE_RE = re.compile(r"^\s*(`{3,}|~{3,})")
TABLE_SEPARATOR_RE = re.compile(r"^\s*\|?\s*:?-+:?\s*(\|\s*:?-+:?\s*)*\|?\s*$")


def _markdown_blocks(content: str) -> Iterator[Tuple[str, str]]:
    """Yield ``(kind, text)`` for each block of a markdown document."""
    lines = content.splitlines()
    i = 0
    while i < len(lines):
        line = lines[i]
        if not line.strip():
            i += 1
            continue

        fence = FENCE_RE.match(line)
        if fence:
            code = []
            i += 1
            while i < len(lines) and not lines[i].strip().startswith(fence.group(1)):
                code.append(lines[i])
                i += 1
            i += 1
            yield "code", "\n".join(code)
            continue

        if line.lstrip().startswith("|") and i + 1 < len(lines) and TABLE_SEPARATOR_RE.match(lines[i + 1]):
            table = []
            while i < len(lines) and lines[i].lstrip().startswith("|"):
                table.append(lines[i].strip())
                i += 1
            yield "table", "\n".join(table)
            continue

        heading = HEADING_RE.match(line)
        if heading:
            i += 1
            yield "heading", heading.group(2)
            continue

        if line.lstrip().startswith(">"):
            quote = []
            while i < len(lines) and lines[i].lstrip().startswith(">"):
                quote.append(lines[i].lstrip()[1:].strip())
                i += 1
            yield "blockquote", "\n".join(quote)
            continue

        item = LIST_ITEM_RE.match(line)
        if item:
            text = [item.group(1).strip()]
            i += 1
            # Indented lines continue the item
            while (
                i < len(lines) and lines[i][:1] in (" ", "\t") and lines[i].strip()
                and not LIST_ITEM_RE.match(lines[i])
            ):
                text.append(lines[i].strip())
                i += 1
            yield "list_item", "\n".join(text)
            continue

        paragraph = []
        while i < len(lines) and lines[i].strip() and not (
            HEADING_RE.match(lines[i]) or FENCE_RE.match(lines[i]) or LIST_ITEM_RE.match(lines[i])
            or lines[i].lstrip().startswith((">", "|"))
        ):
            paragraph.append(lines[i].strip())
            i += 1
        if not paragraph:
            # A lone table row without a separator line
            paragraph.append(line.strip())
            i += 1
        yield "paragraph", "\n".join(paragraph)


def generate_chunks(content: str, max_chunk_length: int = MAX_CHUNK_LENGTH) -> List[str]:
    """
    Split a markdown document into chunks of whole blocks.

    Headings, paragraphs, list items and quotes accumulate until the next
    block would push the chunk past ``max_chunk_length``. Code blocks and
    tables always become chunks of their own.
    """
    chunks: List[str] = []
    current = ""

    def flush() -> None:
        nonlocal current
        if current.strip():
            chunks.append(current.strip())
        current = ""

    for kind, text in _markdown_blocks(content):
        if kind in ("code", "table"):
            flush()
            if text.strip():
                chunks.append(text.strip())
            continue

        if len(current) + len(text) > max_chunk_length:
            flush()
        if kind == "heading":
            current += text + " "
        elif kind == "paragraph":
            current += text + "\n\n"
        elif kind == "list_item":
            current += "- " + text + "\n"
        else:
            current += "> " + text + "\n"

        if len(current) >= max_chunk_length:
            flush()

    flush()
    return chunks


def _normalized(vectors: List[List[float]]) -> np.ndarray:
    matrix = np.array(vectors).astype('float32')
    faiss.normalize_L2(matrix)
    return matrix


class MemoryService:
    async def create_resource(self, user_id: str, content: str) -> Resource:
        chunks = generate_chunks(content) or [content]
        vectors = await openai_service.create_embeddings(chunks)
        return await run_sync(memory_repository.create_resource, user_id, content, list(zip(chunks, vectors)))

    async def find_relevant_content(
        self,
        query: str,
        user_id: str,
        limit: int = DEFAULT_LIMIT,
    ) -> List[RelevantContent]:
        """Chunks scoring above the similarity threshold, best first."""

        async def _search() -> List[RelevantContent]:
            stored = await run_sync(memory_repository.get_user_embeddings, user_id)
            if not stored:
                return []

            query_vector = _normalized([await openai_service.create_embedding(query)])
            matrix = _normalized([vector for _, vector in stored])

            index = faiss.IndexFlatIP(matrix.shape[1])
            index.add(matrix)
            scores, ids = index.search(query_vector, min(limit, len(stored)))

            results = []
            for score, idx in zip(scores[0], ids[0]):
                if idx < 0 or score <= SIMILARITY_THRESHOLD:
                    continue
                results.append(RelevantContent(content=stored[idx][0], similarity=round(float(score), 2)))
            return results

        results = await execute_with_retry(_search)
        logger.debug(f"Memory search for user {user_id} returned {len(results)} results")
        return results


memory_service = MemoryService()
