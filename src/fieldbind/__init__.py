"""Field injection container.

This package provides a small dependency injection container for Python that
supplies dependencies through annotated fields rather than constructor
arguments. Rules map a requested type (optionally qualified by a name) to a
value, a class, a lazily built singleton, or another rule, and child
injectors inherit their parent's rules unless they map the key themselves.

Exports:
- `Injector`: the container; mapping, resolution, injection and hierarchy.
- `Inject`: annotation marker, `Annotated[Repo, Inject()]` or `Annotated[str, Inject("url")]`.
- `post_inject`: decorator for methods run after fields are injected.
- `InjectionConfig` and the result strategies backing each rule.
- `MissingMappingError` / `InvalidTargetError`: failures, both `InjectionError`.
"""

from ._config import InjectionConfig
from ._errors import InjectionError, InvalidTargetError, MissingMappingError
from ._injector import Injector
from ._keys import RequestKey, request_key
from ._points import Inject, InjectionPoint, describe_injection_points, post_inject
from ._results import AliasResult, ClassResult, Result, SingletonResult, ValueResult


__all__ = [
    "AliasResult",
    "ClassResult",
    "Inject",
    "InjectionConfig",
    "InjectionError",
    "InjectionPoint",
    "Injector",
    "InvalidTargetError",
    "MissingMappingError",
    "RequestKey",
    "Result",
    "SingletonResult",
    "ValueResult",
    "describe_injection_points",
    "post_inject",
    "request_key",
]
