"""Prompt templates and conversation formatting."""

from __future__ import annotations

import string
from dataclasses import dataclass
from typing import Any

from .agents.state import Message
from .core.errors import CompositionError
from .core.stage import Stage


def template_variables(template: str) -> list[str]:
    """Return the ``{name}`` fields of a format-string template, in order."""
    names: list[str] = []
    for _, field_name, _, _ in string.Formatter().parse(template):
        if field_name and field_name not in names:
            names.append(field_name)
    return names


def format_chat_history(messages: list[Message]) -> str:
    """Render history as ``Human:`` / ``Assistant:`` dialogue lines."""
    lines = []
    for message in messages:
        if message.role == "user":
            lines.append(f"Human: {message.content}")
        elif message.role == "assistant":
            lines.append(f"Assistant: {message.content}")
        else:
            lines.append(f"{message.role}: {message.content}")
    return "\n".join(lines)


def format_message(message: Message) -> str:
    """Render one message as ``role: content``."""
    return f"{message.role}: {message.content}"


def _render(template: str, variables: dict[str, Any], owner: str) -> str:
    missing = [name for name in template_variables(template) if name not in variables]
    if missing:
        raise CompositionError(
            "input",
            owner,
            f"Missing prompt variables: {', '.join(missing)}.",
        )
    return template.format(**variables)


class PromptTemplate(Stage[dict, str]):
    """Renders a ``str.format`` template from a dict of variables.

    Example:
        prompt = PromptTemplate("Question: {question}")
        await prompt.arun({"question": "Why?"})  # "Question: Why?"
    """

    input_type = dict
    output_type = str

    def __init__(
        self,
        template: str,
        partial_variables: dict[str, Any] | None = None,
        name: str | None = None,
    ):
        super().__init__(name or "PromptTemplate")
        self.template = template
        self.partial_variables = dict(partial_variables or {})

    @property
    def input_variables(self) -> list[str]:
        return [
            name
            for name in template_variables(self.template)
            if name not in self.partial_variables
        ]

    def partial(self, **variables: Any) -> "PromptTemplate":
        """Return a copy with some variables already filled in."""
        return PromptTemplate(
            self.template,
            {**self.partial_variables, **variables},
            name=self.name,
        )

    def format(self, **variables: Any) -> str:
        return _render(self.template, {**self.partial_variables, **variables}, self.name)

    async def arun(self, value: dict) -> str:
        return self.format(**value)


@dataclass(frozen=True)
class MessagesPlaceholder:
    """Slot in a ChatPromptTemplate filled with a list of messages."""

    variable_name: str
    optional: bool = False


class ChatPromptTemplate(Stage[dict, list]):
    """Renders a list of role templates and placeholders into messages.

    Example:
        prompt = ChatPromptTemplate([
            ("system", "You are {persona}."),
            MessagesPlaceholder("chat_history"),
            ("user", "{input}"),
        ])
    """

    input_type = dict
    output_type = list

    def __init__(
        self,
        messages: list[tuple[str, str] | MessagesPlaceholder],
        partial_variables: dict[str, Any] | None = None,
        name: str | None = None,
    ):
        super().__init__(name or "ChatPromptTemplate")
        self.messages = list(messages)
        self.partial_variables = dict(partial_variables or {})

    def partial(self, **variables: Any) -> "ChatPromptTemplate":
        return ChatPromptTemplate(
            self.messages,
            {**self.partial_variables, **variables},
            name=self.name,
        )

    def format_messages(self, **variables: Any) -> list[Message]:
        variables = {**self.partial_variables, **variables}
        rendered: list[Message] = []
        for entry in self.messages:
            if isinstance(entry, MessagesPlaceholder):
                value = variables.get(entry.variable_name)
                if value is None:
                    if entry.optional:
                        continue
                    raise CompositionError(
                        "input",
                        self.name,
                        f"Missing messages for placeholder '{entry.variable_name}'.",
                    )
                rendered.extend(value)
                continue
            role, template = entry
            rendered.append(Message(role=role, content=_render(template, variables, self.name)))
        return rendered

    async def arun(self, value: dict) -> list[Message]:
        return self.format_messages(**value)
