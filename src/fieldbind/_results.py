from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from ._config import InjectionConfig
    from ._injector import Injector


class Result(ABC):
    """Strategy producing the value of a mapping rule."""

    @abstractmethod
    def resolve(self, injector: Injector) -> Any: ...

    def has_response(self, injector: Injector) -> bool:
        return True


class ValueResult(Result):
    def __init__(self, value: Any) -> None:
        self.value = value

    def resolve(self, injector: Injector) -> Any:
        return self.value

    def __repr__(self) -> str:
        return f"ValueResult({self.value!r})"


class ClassResult(Result):
    """A new instance per resolution, with its fields injected."""

    def __init__(self, concrete: type) -> None:
        self.concrete = concrete

    def resolve(self, injector: Injector) -> Any:
        return injector.instantiate(self.concrete)

    def __repr__(self) -> str:
        return f"ClassResult({self.concrete.__qualname__})"


class SingletonResult(Result):
    """Build once through the first resolving injector, then reuse.

    The cache is owned by this result, so every container sharing the
    enclosing config shares the instance.
    """

    def __init__(self, concrete: type) -> None:
        self.concrete = concrete
        self.instance: Any = None
        self._created = False
        # Reentrant so that a dependency resolving this singleton again
        # while it is being built does not deadlock.
        self._lock = threading.RLock()

    def resolve(self, injector: Injector) -> Any:
        with self._lock:
            if not self._created:
                instance = injector.instantiate(self.concrete)
                self.instance = instance
                self._created = True
                logger.debug("Created singleton %s", self.concrete.__qualname__)
            return self.instance

    def __repr__(self) -> str:
        state = "cached" if self._created else "lazy"
        return f"SingletonResult({self.concrete.__qualname__}, {state})"


class AliasResult(Result):
    """Delegates to another rule, resolved against the container that owns it."""

    def __init__(self, rule: InjectionConfig) -> None:
        self.rule = rule

    def resolve(self, injector: Injector) -> Any:
        return self.rule.resolve(self.rule.injector)

    def has_response(self, injector: Injector) -> bool:
        return self.rule.has_response(self.rule.injector)

    def __repr__(self) -> str:
        return f"AliasResult({self.rule!r})"
