"""Documents, the document-store contract and the retriever stage."""

from __future__ import annotations

import base64
import inspect
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from .core.errors import RetrievalError
from .core.stage import Stage

logger = logging.getLogger(__name__)

DOCUMENT_SEPARATOR = "\n\n"


@dataclass(frozen=True)
class Document:
    """A retrieved piece of text plus its metadata."""

    page_content: str
    metadata: dict[str, Any] = field(default_factory=dict)


class DocumentStore(Protocol):
    """Interface for ranked document lookup (most relevant first)."""

    async def retrieve(self, query: str) -> list[Document]:
        """Return documents relevant to ``query``; may be empty."""
        ...


_WORD = re.compile(r"\w+")


def _terms(text: str) -> set[str]:
    return {word.lower() for word in _WORD.findall(text)}


class InMemoryDocumentStore:
    """Ranks documents by term overlap with the query.

    Suitable for demos and tests; production deployments plug in a vector
    store that satisfies ``DocumentStore``.
    """

    def __init__(self, documents: list[Document] | None = None, k: int = 4):
        self.documents = list(documents or [])
        self.k = k

    def add(self, *documents: Document) -> None:
        self.documents.extend(documents)

    async def retrieve(self, query: str) -> list[Document]:
        query_terms = _terms(query)
        scored = [
            (len(query_terms & _terms(doc.page_content)), index, doc)
            for index, doc in enumerate(self.documents)
        ]
        ranked = sorted(
            (entry for entry in scored if entry[0] > 0),
            key=lambda entry: (-entry[0], entry[1]),
        )
        return [doc for _, _, doc in ranked[: self.k]]


RetrievalCallback = Callable[[list[Document]], Any]


class Retriever(Stage[str, list]):
    """Queries a DocumentStore with a standalone question.

    Side effect: every callback in ``on_retrieved`` is called exactly once
    with the ranked documents, as soon as the store returns. Store failures
    are raised as ``RetrievalError``.

    Args:
        store: DocumentStore to query
        on_retrieved: Callbacks receiving the documents (sync or async)
    """

    input_type = str
    output_type = list

    def __init__(
        self,
        store: DocumentStore,
        on_retrieved: list[RetrievalCallback] | None = None,
        name: str | None = None,
    ):
        super().__init__(name or "Retriever")
        self.store = store
        self.on_retrieved = list(on_retrieved or [])

    async def arun(self, query: str) -> list[Document]:
        try:
            documents = list(await self.store.retrieve(query))
        except RetrievalError:
            raise
        except Exception as e:
            raise RetrievalError(f"Document store failed for query {query!r}: {e}") from e

        logger.debug("[%s] Retrieved %d documents", self.name, len(documents))
        for callback in self.on_retrieved:
            result = callback(documents)
            if inspect.isawaitable(result):
                await result
        return documents


def combine_documents(documents: list[Document]) -> str:
    """Join page contents with a blank line between documents."""
    return DOCUMENT_SEPARATOR.join(doc.page_content for doc in documents)


def source_previews(documents: list[Document], preview_length: int = 50) -> list[dict[str, Any]]:
    """Truncated, citation-sized views of the documents."""
    return [
        {
            "pageContent": doc.page_content[:preview_length] + "...",
            "metadata": doc.metadata,
        }
        for doc in documents
    ]


def serialize_sources(documents: list[Document], preview_length: int = 50) -> str:
    """Encode document previews as base64 JSON for a response header."""
    payload = json.dumps(source_previews(documents, preview_length), ensure_ascii=False)
    return base64.b64encode(payload.encode("utf-8")).decode("ascii")


def decode_sources(header: str) -> list[dict[str, Any]]:
    """Reverse ``serialize_sources``."""
    return json.loads(base64.b64decode(header.encode("ascii")).decode("utf-8"))

