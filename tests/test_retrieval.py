"""Tests for documents, stores, the retriever stage and source framing."""

import base64
import json

import pytest

from conftest import FailingStore, StubStore
from streamchain import Document, InMemoryDocumentStore, Retriever
from streamchain.core.errors import RetrievalError
from streamchain.retrieval import (
    combine_documents,
    decode_sources,
    serialize_sources,
    source_previews,
)


@pytest.mark.asyncio
async def test_in_memory_store_ranks_by_term_overlap():
    store = InMemoryDocumentStore(
        [
            Document("Cats sleep all day."),
            Document("Dogs love long walks and dogs love treats."),
            Document("Walks with dogs in the park."),
        ],
        k=2,
    )

    results = await store.retrieve("Do dogs like walks in the park?")
    assert [doc.page_content for doc in results] == [
        "Walks with dogs in the park.",
        "Dogs love long walks and dogs love treats.",
    ]


@pytest.mark.asyncio
async def test_in_memory_store_can_return_nothing():
    store = InMemoryDocumentStore()
    store.add(Document("Cats sleep all day."))
    assert await store.retrieve("quantum chromodynamics") == []


@pytest.mark.asyncio
async def test_retriever_fires_callbacks_once(two_documents):
    received = []

    async def async_callback(documents):
        received.append(("async", documents))

    retriever = Retriever(
        StubStore(two_documents),
        on_retrieved=[lambda documents: received.append(("sync", documents)), async_callback],
    )

    documents = await retriever.arun("What is 2+2?")

    assert documents == two_documents
    assert received == [("sync", two_documents), ("async", two_documents)]


@pytest.mark.asyncio
async def test_retriever_wraps_store_failures():
    retriever = Retriever(FailingStore())

    with pytest.raises(RetrievalError) as exc_info:
        await retriever.arun("anything")

    assert exc_info.value.status_code == 502
    assert "vector store unreachable" in str(exc_info.value)


def test_combine_documents(two_documents):
    combined = combine_documents(two_documents)
    assert combined == "\n\n".join(doc.page_content for doc in two_documents)
    assert combine_documents([]) == ""


def test_source_previews_truncate(two_documents):
    previews = source_previews(two_documents, preview_length=10)

    assert previews == [
        {"pageContent": "Two plus t...", "metadata": two_documents[0].metadata},
        {"pageContent": "Dogs can c...", "metadata": {"source": "dogs.txt"}},
    ]


def test_sources_header_round_trip(two_documents):
    header = serialize_sources(two_documents)

    # Header values must be plain ASCII
    header.encode("ascii")
    decoded = decode_sources(header)

    assert decoded == source_previews(two_documents)
    assert decoded[0]["pageContent"] == two_documents[0].page_content[:50] + "..."
    assert decoded[0]["metadata"] == {"source": "math.txt", "loc": {"lines": {"from": 1, "to": 2}}}


def test_sources_header_handles_unicode():
    documents = [Document("Café crème ☕ is the best", {"lang": "fr"})]
    header = serialize_sources(documents)

    payload = json.loads(base64.b64decode(header).decode("utf-8"))
    assert payload[0]["pageContent"].startswith("Café crème ☕")
    assert decode_sources(header) == payload
