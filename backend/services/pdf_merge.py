"""Combine generated and fetched PDFs into one document.

Every input is a page-producing source: either a generated document rendered
on demand (the cover table) or an opaque payload fetched from the provider.
`merge_documents` appends their pages in list order and skips any source
that cannot be rendered or read.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Sequence, Union

from pypdf import PdfReader, PdfWriter
from pypdf.errors import PyPdfError

from ride_ledger.core import MergeError
from ride_ledger.models import BillingDocument, DocumentFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeneratedDocument:
    label: str
    render: Callable[[], bytes]

    def pdf_bytes(self) -> bytes:
        return self.render()


@dataclass(frozen=True)
class FetchedDocument:
    label: str
    content: bytes

    def pdf_bytes(self) -> bytes:
        return self.content

    @classmethod
    def from_billing(cls, document: BillingDocument) -> "FetchedDocument":
        if document.content is None:
            raise ValueError(f"Billing document for {document.ride_id} has no content")
        return cls(label=document.ride_id, content=document.content)


PageSource = Union[GeneratedDocument, FetchedDocument]


@dataclass
class MergeResult:
    content: bytes
    page_count: int
    merged_labels: List[str] = field(default_factory=list)
    failures: List[DocumentFailure] = field(default_factory=list)


def _read_pages(data: bytes) -> list:
    reader = PdfReader(io.BytesIO(data))
    pages = [reader.pages[i] for i in range(len(reader.pages))]
    if not pages:
        raise ValueError("document has no pages")
    return pages


UNREADABLE_ERRORS = (PyPdfError, ValueError, KeyError, TypeError, OSError)


def _failure(source: PageSource, exc: Exception) -> DocumentFailure:
    logger.error("Failed to read PDF for %s: %s", source.label, exc)
    return DocumentFailure(label=source.label, reason=str(exc) or type(exc).__name__)


def readable_sources(sources: Sequence[PageSource]) -> tuple[List[PageSource], List[DocumentFailure]]:
    """Keep the sources that parse as PDFs with at least one page."""
    readable: List[PageSource] = []
    failures: List[DocumentFailure] = []
    for source in sources:
        try:
            _read_pages(source.pdf_bytes())
        except UNREADABLE_ERRORS as exc:
            failures.append(_failure(source, exc))
            continue
        readable.append(source)
    return readable, failures


def merge_documents(sources: Sequence[PageSource]) -> MergeResult:
    writer = PdfWriter()
    merged: List[str] = []
    failures: List[DocumentFailure] = []

    for source in sources:
        try:
            pages = _read_pages(source.pdf_bytes())
        except UNREADABLE_ERRORS as exc:
            failures.append(_failure(source, exc))
            continue
        for page in pages:
            writer.add_page(page)
        merged.append(source.label)

    if not merged:
        raise MergeError("No documents could be merged")

    buffer = io.BytesIO()
    writer.write(buffer)
    return MergeResult(
        content=buffer.getvalue(),
        page_count=len(writer.pages),
        merged_labels=merged,
        failures=failures,
    )


def billing_sources(documents: Sequence[BillingDocument]) -> tuple[List[FetchedDocument], List[DocumentFailure]]:
    """Split fetched billing documents into mergeable sources and fetch failures."""
    sources: List[FetchedDocument] = []
    failures: List[DocumentFailure] = []
    for document in documents:
        if document.ok:
            sources.append(FetchedDocument.from_billing(document))
        else:
            failures.append(DocumentFailure(label=document.ride_id, reason=document.error or "unavailable"))
    return sources, failures
