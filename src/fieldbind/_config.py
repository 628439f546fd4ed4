from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ._errors import MissingMappingError
from ._keys import RequestKey, request_key
from ._results import AliasResult, ClassResult, Result, SingletonResult, ValueResult


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from ._injector import Injector


class InjectionConfig:
    """A mapping rule for one request key, authored on one injector.

    The config is shared by reference with every descendant injector that
    has not mapped the same key itself. A config that has never been given a
    result is a bare shell and defers to the requesting injector's ancestors;
    one emptied by `clear()` resolves like a missing rule.
    """

    def __init__(self, for_type: Any, name: str, injector: Injector) -> None:
        self.for_type = for_type
        self.name = name
        self.injector = injector
        self.result: Result | None = None
        self._bare = True

    @property
    def key(self) -> RequestKey:
        return request_key(self.for_type, self.name)

    def set_result(self, result: Result | None) -> InjectionConfig:
        if self.result is not None and result is not None and type(self.result) is not type(result):
            logger.warning("Replacing %r with %r for %r", self.result, result, self.key)
        self.result = result
        self._bare = False
        return self

    def clear(self) -> None:
        self.result = None
        self._bare = False

    def to_value(self, value: Any) -> InjectionConfig:
        return self.set_result(ValueResult(value))

    def to_class(self, concrete: type) -> InjectionConfig:
        return self.set_result(ClassResult(concrete))

    def to_singleton(self, concrete: type) -> InjectionConfig:
        return self.set_result(SingletonResult(concrete))

    def to_rule(self, rule: InjectionConfig) -> InjectionConfig:
        """Alias this config to `rule` and return `rule` for further chaining."""
        self.set_result(AliasResult(rule))
        return rule

    def has_response(self, injector: Injector) -> bool:
        if self.result is not None:
            return self.result.has_response(injector)
        if self._bare:
            return injector.get_ancestor_mapping(self.for_type, self.name) is not None
        return False

    def resolve(self, injector: Injector) -> Any:
        if self.result is not None:
            return self.result.resolve(injector)

        if self._bare:
            ancestor = injector.get_ancestor_mapping(self.for_type, self.name)
            if ancestor is not None:
                return ancestor.resolve(injector)

        raise MissingMappingError(self.for_type, self.name)

    def __repr__(self) -> str:
        return f"InjectionConfig({self.key!r}, {self.result!r})"
