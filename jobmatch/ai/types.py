from dataclasses import dataclass
from typing import Any, Literal, Protocol, Sequence


Role = Literal["system", "user", "assistant"]


@dataclass(frozen=True)
class ChatMessage:
    role: Role
    content: str


class CompletionClient(Protocol):
    async def complete_json(
        self,
        messages: Sequence[ChatMessage],
        *,
        schema: dict[str, Any],
        schema_name: str,
        temperature: float | None = None,
    ) -> dict[str, Any]: ...
