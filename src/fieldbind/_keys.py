from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RequestKey:
    """Registry key for a requested type and optional name.

    The type object itself is the identity token; two keys are equal iff
    both the type and the name are equal.
    """

    for_type: Any
    name: str = ""

    def __repr__(self) -> str:
        type_name = getattr(self.for_type, "__qualname__", repr(self.for_type))
        if self.name:
            return f"RequestKey({type_name}, {self.name!r})"
        return f"RequestKey({type_name})"


def request_key(for_type: Any, name: str | None = None) -> RequestKey:
    # None and "" are the same unnamed request
    return RequestKey(for_type, name or "")
