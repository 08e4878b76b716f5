import io
import logging

import pandas as pd

from app.schemas.document import Document
from app.services.artifacts.base import DocumentHandler
from app.services.artifacts.prompts import SHEET_PROMPT, update_document_prompt
from app.services.data_stream import DataStream
from app.services.openai_service import openai_service

logger = logging.getLogger(__name__)


def normalize_csv(raw_csv: str) -> str:
    """
    Re-serialize model output as clean comma-separated CSV, keeping cell values as text.
    Falls back to ';' as separator when the first parse yields a single column.
    """
    if not raw_csv.strip():
        return ""

    try:
        df = pd.read_csv(io.StringIO(raw_csv), skipinitialspace=True, dtype=str, keep_default_na=False)
        if len(df.columns) == 1 and ";" in raw_csv:
            df = pd.read_csv(
                io.StringIO(raw_csv), sep=";", skipinitialspace=True, dtype=str, keep_default_na=False
            )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        logger.warning(f"Could not parse generated CSV, keeping raw output: {e}")
        return raw_csv.strip()

    df.columns = [str(col).strip() for col in df.columns]
    df = df[(df != "").any(axis=1)]
    return df.to_csv(index=False).strip()


class SheetDocumentHandler(DocumentHandler):
    kind = "sheet"

    async def create_content(self, title: str, stream: DataStream) -> str:
        return await self._generate(title, SHEET_PROMPT, stream)

    async def update_content(self, document: Document, description: str, stream: DataStream) -> str:
        system = update_document_prompt(document.content, self.kind) + SHEET_PROMPT
        return await self._generate(description, system, stream)

    async def _generate(self, prompt: str, system: str, stream: DataStream) -> str:
        result = await openai_service.generate_json(prompt=prompt, system=system)
        csv = normalize_csv(result.get("csv") or "")
        stream.write_data("sheet-delta", csv)
        return csv
