"""
Example: Streaming Retrieval Chain
==================================

Streams an answer grounded in retrieved documents and prints the sources
that would be sent in the ``x-sources`` header.

Runs offline with a mock model; swap in ``OpenAI()`` or ``Anthropic()``
for a real provider.
"""

import asyncio

from streamchain import ConversationalRetrievalChain, Document, InMemoryDocumentStore
from streamchain.agents import Message


class MockChatModel:
    """Condenses by echoing the question, answers word by word."""

    async def complete(self, messages, tools=None, **kwargs):
        prompt = messages[-1]["content"]
        question = prompt.split("Follow Up Input:")[-1].split("\n")[0].strip()
        return {"role": "assistant", "content": question}

    async def stream(self, messages, tools=None, **kwargs):
        for word in "Woof! Puppies nap up to eighteen hours a day, pawsome!".split(" "):
            await asyncio.sleep(0.05)
            yield {"content": word + " "}


async def main():
    store = InMemoryDocumentStore(
        [
            Document("Puppies sleep eighteen hours a day.", {"source": "puppies.md"}),
            Document("Adult dogs nap about twelve hours a day.", {"source": "dogs.md"}),
            Document("Parrots can live for decades.", {"source": "parrots.md"}),
        ],
        k=2,
    )
    chain = ConversationalRetrievalChain(MockChatModel(), store, preview_length=20)
    history = [
        Message("user", "Tell me about puppies."),
        Message("assistant", "Woof! They are the best."),
    ]

    print("=" * 60)
    print("Streaming answer:")
    print("-" * 60)
    run = chain.stream("How long do puppies sleep?", history)
    async for chunk in run:
        print(chunk.decode("utf-8"), end="", flush=True)
    print("\n" + "-" * 60)

    for preview in await run.source_previews():
        print(f"[{preview['metadata']['source']}] {preview['pageContent']}")
    print(f"x-sources: {await run.sources_header()}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(main())
