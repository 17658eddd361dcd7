"""Object-shaped fan-out composition."""

from __future__ import annotations

import asyncio
from typing import Any

from .stage import Stage, coerce_stage


class Parallel(Stage[Any, dict]):
    """Run several stages on the same input and collect a dict of results.

    Each value in the mapping may be a Stage or a plain function of the
    input. Branches run concurrently; if any branch fails, the others are
    cancelled and the error propagates. There is no partial result.

    Example:
        fan_out = Parallel({
            "question": condense_pipeline,
            "chat_history": lambda inputs: inputs["chat_history"],
        })
        await fan_out.arun({"question": "...", "chat_history": "..."})
        # {"question": "<standalone>", "chat_history": "..."}
    """

    output_type = dict

    def __init__(self, branches: dict[str, Any], name: str | None = None):
        super().__init__(name or "Parallel")
        if not branches:
            raise ValueError("Parallel requires at least one branch")
        self.branches: dict[str, Stage] = {
            key: coerce_stage(branch) for key, branch in branches.items()
        }

    async def arun(self, value: Any) -> dict[str, Any]:
        tasks = {
            key: asyncio.create_task(branch.arun(value), name=f"{self.name}.{key}")
            for key, branch in self.branches.items()
        }
        try:
            results = await asyncio.gather(*tasks.values())
        except BaseException:
            for task in tasks.values():
                task.cancel()
            await asyncio.gather(*tasks.values(), return_exceptions=True)
            raise
        return dict(zip(tasks, results))

    def __repr__(self) -> str:
        return f"Parallel({', '.join(self.branches)})"
