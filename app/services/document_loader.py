import io
import logging
from typing import List, Tuple

from docx import Document
from fastapi import UploadFile
from pypdf import PdfReader

from app.errors import ExtractionError

logger = logging.getLogger("app.document_loader")

DOCUMENT_SEPARATOR = "\n\n--- DOCUMENT SEPARATOR ---\n\n"


def _read_pdf(name: str, data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as exc:
        raise ExtractionError(f"Could not process {name}: {exc}", file_name=name) from exc
    text = "\n".join(pages)
    logger.info("Parsed PDF: name=%s pages=%s chars=%s", name, len(pages), len(text))
    return text


def _read_docx(name: str, data: bytes) -> str:
    try:
        doc = Document(io.BytesIO(data))
    except Exception as exc:
        raise ExtractionError(f"Could not process {name}: {exc}", file_name=name) from exc
    text = "\n".join(p.text for p in doc.paragraphs)
    logger.info("Parsed DOCX: name=%s paragraphs=%s chars=%s", name, len(doc.paragraphs), len(text))
    return text


def extract_text(name: str, data: bytes) -> str:
    suffix = (name or "").lower()
    if not data:
        raise ExtractionError(f"Could not read file: {name}", file_name=name)
    if suffix.endswith(".pdf"):
        return _read_pdf(name, data)
    if suffix.endswith(".docx"):
        return _read_docx(name, data)
    raise ExtractionError("Unsupported file type; use .pdf or .docx", file_name=name)


async def read_upload(file: UploadFile) -> Tuple[str, bytes]:
    return file.filename or "", await file.read()


def read_documents(documents: List[Tuple[str, bytes]]) -> str:
    """Extract and join the text of every (name, data) pair; fails if nothing usable remains."""
    if not documents:
        raise ExtractionError("No files uploaded")
    combined = DOCUMENT_SEPARATOR.join(extract_text(name, data) for name, data in documents)
    if not combined.replace(DOCUMENT_SEPARATOR, "").strip():
        raise ExtractionError("The documents appear to be empty or contain no extractable text.")
    return combined
