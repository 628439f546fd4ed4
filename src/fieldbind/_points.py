"""Injection metadata read from class annotations.

A field becomes an injection point when its annotation carries an `Inject`
marker:

    class Service:
        repo: Annotated[Repository, Inject()]
        url: Annotated[str, Inject("service_url")]

Methods decorated with `post_inject` run once all fields are written.
"""

from __future__ import annotations

import builtins
import inspect
import logging
import sys
import typing
import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any, ForwardRef, Protocol, cast, get_args, get_origin, get_type_hints

from ._errors import InvalidTargetError
from ._keys import RequestKey, request_key


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

    F = typing.TypeVar("F", bound=Callable[..., Any])


@dataclass(frozen=True)
class Inject:
    name: str | None = None


@dataclass(frozen=True)
class InjectionPoint:
    field: str
    key: RequestKey

    @property
    def resolved(self) -> bool:
        return not isinstance(self.key.for_type, ForwardRef)


@dataclass(frozen=True)
class _ClassPoints:
    points: tuple[InjectionPoint, ...]
    # set when some annotation of the class could not be evaluated
    error: str | None = None


_POST_INJECT_ATTR = "__post_inject_order__"

_points_cache: weakref.WeakKeyDictionary[type, _ClassPoints] = weakref.WeakKeyDictionary()
_hooks_cache: weakref.WeakKeyDictionary[type, tuple[str, ...]] = weakref.WeakKeyDictionary()


def post_inject(method: F | None = None, *, order: int = 0) -> Any:
    """Mark a zero-argument method to run after field injection.

    Usable bare (`@post_inject`) or with an explicit ordering
    (`@post_inject(order=2)`); lower orders run first.
    """

    def mark(fn: F) -> F:
        setattr(fn, _POST_INJECT_ATTR, order)
        return fn

    if method is None:
        return mark
    return mark(method)


def describe_injection_points(cls: type, *, strict: bool = False) -> list[InjectionPoint]:
    """Return the injectable fields of `cls`, base classes first.

    A field redeclared in a subclass appears once, at the base class
    position, with the subclass annotation.

    Annotations that cannot be evaluated are skipped unless they belong to
    an injected field, which raises `InvalidTargetError`. With `strict`
    any unevaluable annotation raises.
    """
    found = _class_points(cls)

    unresolved = [point.field for point in found.points if not point.resolved]
    if unresolved:
        msg = f"Cannot resolve the requested type of injected field(s) {', '.join(unresolved)} of {cls.__qualname__}"
        raise InvalidTargetError(msg)

    if strict and found.error is not None:
        msg = f"Cannot read injection points of {cls.__qualname__}: {found.error}"
        raise InvalidTargetError(msg)

    return list(found.points)


def collect_injection_points(cls: type) -> list[InjectionPoint]:
    """Like `describe_injection_points` but never raises.

    Fields whose requested type cannot be resolved are included with a
    `ForwardRef` as their requested type.
    """
    return list(_class_points(cls).points)


def describe_post_hooks(cls: type) -> list[str]:
    hooks = _hooks_cache.get(cls)
    if hooks is None:
        hooks = _discover_post_hooks(cls)
        _hooks_cache[cls] = hooks
    return list(hooks)


def _class_points(cls: type) -> _ClassPoints:
    found = _points_cache.get(cls)
    if found is None:
        found = _discover_points(cls)
        _points_cache[cls] = found
    return found


def _discover_points(cls: type) -> _ClassPoints:
    try:
        hints = get_type_hints(cls, include_extras=True)
    except (NameError, TypeError, SyntaxError) as exc:
        logger.warning("'%s' evaluating %s type hints, reading fields one by one", exc, cls.__qualname__)
        return _ClassPoints(_points_by_field(cls), error=str(exc))

    points = (_point_for(field, hint) for field, hint in hints.items())
    return _ClassPoints(tuple(point for point in points if point is not None))


def _points_by_field(cls: type) -> tuple[InjectionPoint, ...]:
    points: dict[str, InjectionPoint | None] = {}
    for klass in reversed(cls.__mro__):
        if klass is object:
            continue
        namespace = _ClassNamespace(klass)
        for field, annotation in _own_annotations(klass).items():
            # assigning keeps the base class position
            points[field] = _point_for_raw(field, annotation, namespace)

    return tuple(point for point in points.values() if point is not None)


def _point_for(field: str, hint: Any) -> InjectionPoint | None:
    if get_origin(hint) is not Annotated:
        return None

    requested, *metadata = get_args(hint)
    marker = next((m for m in metadata if isinstance(m, Inject)), None)
    if marker is None:
        return None
    return InjectionPoint(field, request_key(requested, marker.name))


def _point_for_raw(field: str, annotation: Any, namespace: _ClassNamespace) -> InjectionPoint | None:
    if isinstance(annotation, ForwardRef):
        annotation = annotation.__forward_arg__

    if isinstance(annotation, str):
        try:
            annotation = namespace.evaluate(annotation)
        except Exception:  # noqa: BLE001
            if "Inject" not in annotation:
                logger.debug("Skipping unevaluable annotation %r of field '%s'", annotation, field)
                return None
            return InjectionPoint(field, request_key(ForwardRef(annotation)))

    point = _point_for(field, annotation)
    if point is None or point.resolved:
        return point

    # Annotated["Name", Inject()] keeps the quoted type as a forward reference
    try:
        requested = namespace.evaluate(point.key.for_type.__forward_arg__)
    except Exception:  # noqa: BLE001
        return point
    return InjectionPoint(field, request_key(requested, point.key.name))


class _ClassNamespace(dict):
    """Class namespace that turns unknown names into forward references."""

    def __init__(self, klass: type) -> None:
        super().__init__(vars(klass))
        module = sys.modules.get(klass.__module__)
        self.module_globals: dict[str, Any] = getattr(module, "__dict__", {})

    def evaluate(self, expression: str) -> Any:
        return eval(expression, self.module_globals, self)  # noqa: S307

    def __missing__(self, key: str) -> Any:
        if key in self.module_globals:
            return self.module_globals[key]
        if hasattr(builtins, key):
            return getattr(builtins, key)
        return ForwardRef(key)


if sys.version_info >= (3, 14):
    import annotationlib

    def _own_annotations(klass: type) -> Mapping[str, Any]:
        return annotationlib.get_annotations(klass, format=annotationlib.Format.FORWARDREF)

else:

    def _own_annotations(klass: type) -> Mapping[str, Any]:
        return klass.__dict__.get("__annotations__", {})


def _discover_post_hooks(cls: type) -> tuple[str, ...]:
    found: dict[str, int] = {}
    for klass in reversed(cls.__mro__):
        for attr_name, attr in vars(klass).items():
            order = getattr(attr, _POST_INJECT_ATTR, None) if inspect.isfunction(attr) else None
            if order is None:
                # plain override of a hook disables it
                found.pop(attr_name, None)
            else:
                found[attr_name] = order

    ordered = sorted(found.items(), key=lambda item: item[1])
    return tuple(name for name, _ in ordered)


def construct_bare(cls: type) -> Any:
    return cls()


def write_field(instance: object, field: str, value: Any) -> None:
    setattr(instance, field, value)


def is_instantiable(cls: type) -> bool:
    return inspect.isclass(cls) and not inspect.isabstract(cls) and not is_protocol(cls)


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def is_protocol(tp: Any) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def is_protocol(tp: Any) -> bool:
        return (
            inspect.isclass(tp) and issubclass(tp, cast("type", Protocol)) and bool(getattr(tp, "_is_protocol", False))
        )
