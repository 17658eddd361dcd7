"""Output parsers: the last stages of a model pipeline."""

from __future__ import annotations

import json
import re
from contextlib import aclosing
from typing import Any, AsyncIterator, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from .core.errors import OutputParserError
from .core.stage import Stage

ModelT = TypeVar("ModelT", bound=BaseModel)


class StrOutputParser(Stage[str, str]):
    """Passes model text through unchanged, fragment by fragment."""

    input_type = str
    output_type = str
    fragment_wise = True

    async def arun(self, value: str) -> str:
        return value if value is not None else ""

    async def atransform(self, fragments: AsyncIterator[str]) -> AsyncIterator[str]:
        async with aclosing(fragments) as stream:
            async for fragment in stream:
                yield fragment


class BytesOutputParser(Stage[str, bytes]):
    """Encodes model text as UTF-8 bytes for transport."""

    input_type = str
    output_type = bytes
    fragment_wise = True

    def __init__(self, encoding: str = "utf-8", name: str | None = None):
        super().__init__(name)
        self.encoding = encoding

    async def arun(self, value: str) -> bytes:
        return (value or "").encode(self.encoding)

    async def atransform(self, fragments: AsyncIterator[str]) -> AsyncIterator[bytes]:
        async with aclosing(fragments) as stream:
            async for fragment in stream:
                yield fragment.encode(self.encoding)


_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_TAGGED_JSON = re.compile(r"<json>\s*(.*?)\s*</json>", re.DOTALL)

FORMAT_INSTRUCTIONS = """You must format your output as a JSON value that adheres to a given "JSON Schema" instance.

Your output will be parsed and type-checked according to the provided schema instance, so make sure all fields in your output match the schema exactly and there are no trailing commas!

Here is the JSON Schema instance your output must adhere to. Include the enclosing markdown codeblock:
```json
{schema}
```
"""


def extract_json(text: str) -> Any:
    """Pull the first JSON object out of model text.

    Accepts fenced blocks, ``<json>`` tags, or a bare object.
    """
    for pattern in (_FENCED_JSON, _TAGGED_JSON):
        match = pattern.search(text)
        if match:
            text = match.group(1)
            break

    start, end = text.find("{"), text.rfind("}")
    if start == -1 or end < start:
        raise OutputParserError("No JSON object found in model output", llm_output=text)
    try:
        return json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise OutputParserError(f"Invalid JSON in model output: {e}", llm_output=text) from e


class StructuredOutputParser(Stage[str, BaseModel], Generic[ModelT]):
    """Parses model text into a pydantic model.

    Example:
        class Reply(BaseModel):
            tone: Literal["positive", "negative", "neutral"]
            chat_response: str

        parser = StructuredOutputParser(Reply)
        prompt = prompt.partial(format_instructions=parser.get_format_instructions())
        chain = prompt >> model >> parser
    """

    input_type = str

    def __init__(self, model: type[ModelT], name: str | None = None):
        super().__init__(name or f"StructuredOutputParser[{model.__name__}]")
        self.model = model
        self.output_type = model

    def get_format_instructions(self) -> str:
        schema = self.model.model_json_schema()
        schema.pop("title", None)
        return FORMAT_INSTRUCTIONS.format(schema=json.dumps(schema, ensure_ascii=False))

    async def arun(self, value: str) -> ModelT:
        data = extract_json(value)
        try:
            return self.model.model_validate(data)
        except ValidationError as e:
            raise OutputParserError(
                f"Model output does not match {self.model.__name__}: {e}",
                llm_output=value,
            ) from e
