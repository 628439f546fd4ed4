from __future__ import annotations

from typing import Any


class InjectionError(RuntimeError):
    pass


class MissingMappingError(InjectionError):
    """No resolvable rule for a requested type/name.

    `field` and `target` are set when the failure happened while injecting
    into an object.
    """

    def __init__(
        self,
        for_type: Any,
        name: str = "",
        *,
        field: str | None = None,
        target: type | None = None,
    ) -> None:
        self.for_type = for_type
        self.name = name
        self.field = field
        self.target = target
        super().__init__(self._format())

    def _format(self) -> str:
        requested = _type_name(self.for_type)
        if self.name:
            requested = f"{requested} named '{self.name}'"
        if self.field is None:
            return f"No mapping found for {requested}"
        target_name = _type_name(self.target)
        return f"Cannot inject field '{self.field}' of {target_name}: no mapping found for {requested}"


class InvalidTargetError(InjectionError):
    pass


def _type_name(tp: Any) -> str:
    return getattr(tp, "__qualname__", None) or getattr(tp, "__name__", None) or repr(tp)
