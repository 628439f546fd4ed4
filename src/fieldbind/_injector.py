from __future__ import annotations

import inspect
import logging
import threading
import typing
import weakref
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, overload

from ._config import InjectionConfig
from ._errors import InvalidTargetError, MissingMappingError
from ._keys import RequestKey, request_key
from ._points import (
    InjectionPoint,
    collect_injection_points,
    construct_bare,
    describe_injection_points,
    describe_post_hooks,
    is_instantiable,
    is_protocol,
    write_field,
)


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Iterator

T = TypeVar("T")


class Injector:
    """Field-injection container.

    - map rules: value / class / singleton / alias, optionally named
    - resolve rules with `get_instance`
    - inject annotated fields with `inject_into` / `instantiate`
    - child injectors inherit rules and may shadow them locally.

    Rules propagate to descendants when they are written, so a child sees
    every rule of its ancestors it has not mapped itself. With `debug=True`
    abstract classes and protocols are rejected as construction or
    injection targets.
    """

    def __init__(self, *, debug: bool = False) -> None:
        self.debug = debug
        self._registry: dict[RequestKey, InjectionConfig] = {}
        self._children: list[Injector] = []
        self._parent: weakref.ReferenceType[Injector] | None = None
        self._lock = threading.RLock()
        self.map_value(Injector, self)

    @property
    def parent(self) -> Injector | None:
        if self._parent is None:
            return None
        return self._parent()

    @property
    def children(self) -> tuple[Injector, ...]:
        return tuple(self._children)

    # Mapping

    def get_mapping(self, for_type: Any, name: str | None = None) -> InjectionConfig:
        """Return this injector's own config for the key, creating it if needed.

        An inherited config is never returned: writing to it would change
        the ancestor's rule.
        """
        key = request_key(for_type, name)
        with self._lock:
            config = self._registry.get(key)
            if config is None or config.injector is not self:
                config = InjectionConfig(key.for_type, key.name, self)
                self._registry[key] = config
                self._propagate(key, config)
            return config

    def map_value(self, for_type: Any, instance: Any, name: str | None = None) -> InjectionConfig:
        config = self.get_mapping(for_type, name).to_value(instance)
        logger.debug("Mapped %r", config)
        return config

    def map_class(self, for_type: Any, concrete: type, name: str | None = None) -> InjectionConfig:
        self._validate_impl(for_type, concrete)
        config = self.get_mapping(for_type, name).to_class(concrete)
        logger.debug("Mapped %r", config)
        return config

    def map_singleton(self, for_type: type, name: str | None = None) -> InjectionConfig:
        return self.map_singleton_of(for_type, for_type, name)

    def map_singleton_of(self, for_type: Any, concrete: type, name: str | None = None) -> InjectionConfig:
        self._validate_impl(for_type, concrete)
        config = self.get_mapping(for_type, name).to_singleton(concrete)
        logger.debug("Mapped %r", config)
        return config

    def map_rule(self, for_type: Any, rule: InjectionConfig, name: str | None = None) -> InjectionConfig:
        """Alias the key to an existing rule, possibly owned by another injector.

        Returns `rule` itself so configuration can continue on it.
        """
        config = self.get_mapping(for_type, name)
        logger.debug("Mapped %r to %r", config.key, rule)
        return config.to_rule(rule)

    def unmap(self, for_type: Any, name: str | None = None) -> None:
        key = request_key(for_type, name)
        config = self._registry.get(key)
        if config is None or not config.has_response(self):
            raise MissingMappingError(for_type, key.name)

        # an inherited rule is shadowed by an emptied local config
        self.get_mapping(for_type, name).clear()
        logger.debug("Unmapped %r", key)

    # Queries

    def has_mapping(self, for_type: Any, name: str | None = None) -> bool:
        return self._can_resolve(request_key(for_type, name))

    def get_config(self, for_type: Any, name: str | None = None) -> InjectionConfig | None:
        return self._registry.get(request_key(for_type, name))

    def has_config(self, for_type: Any, name: str | None = None) -> bool:
        return request_key(for_type, name) in self._registry

    # Resolution

    @overload
    def get_instance(self, for_type: type[T], name: str | None = None) -> T: ...

    @overload
    def get_instance(self, for_type: Any, name: str | None = None) -> Any: ...

    def get_instance(self, for_type: Any, name: str | None = None) -> Any:
        key = request_key(for_type, name)
        config = self._registry.get(key)
        if config is None:
            raise MissingMappingError(for_type, key.name)
        return config.resolve(self)

    # Injection

    def inject_into(self, target: T) -> T:
        """Write every injectable field of `target`, then run its post hooks.

        Fields are written in discovery order and are not rolled back when
        a later field fails; check `missing_mappings` first when the target
        must stay untouched on failure.
        """
        cls = type(target)
        if self.debug:
            self._validate_target(cls)

        for point in describe_injection_points(cls, strict=self.debug):
            config = self._registry.get(point.key)
            if config is None or not config.has_response(self):
                raise MissingMappingError(point.key.for_type, point.key.name, field=point.field, target=cls)
            try:
                value = config.resolve(self)
            except MissingMappingError as exc:
                if exc.field is not None:
                    raise
                raise MissingMappingError(
                    point.key.for_type, point.key.name, field=point.field, target=cls
                ) from exc
            write_field(target, point.field, value)

        for hook in describe_post_hooks(cls):
            getattr(target, hook)()

        logger.debug("Injected into %s", cls.__qualname__)
        return target

    def missing_mappings(self, cls: type) -> list[InjectionPoint]:
        """Return the points of `cls` this injector cannot satisfy.

        Fields whose requested type cannot be evaluated are reported as
        missing instead of raising.
        """
        return [point for point in collect_injection_points(cls) if not self._can_resolve(point.key)]

    def construct(self, cls: type[T]) -> T:
        if self.debug:
            self._validate_target(cls)
        return construct_bare(cls)

    def instantiate(self, cls: type[T]) -> T:
        return self.inject_into(self.construct(cls))

    # Hierarchy

    def create_child_injector(self) -> Injector:
        child = Injector(debug=self.debug)
        child._parent = weakref.ref(self)

        with self._lock:
            for key, config in self._registry.items():
                if key not in child._registry:
                    child._registry[key] = config
            self._children.append(child)

        logger.debug("Created child injector (depth %d)", child._depth())
        return child

    def get_ancestor_mapping(self, for_type: Any, name: str | None = None) -> InjectionConfig | None:
        """Return the nearest ancestor rule that was mapped on that ancestor itself."""
        key = request_key(for_type, name)
        for ancestor in self._ancestors():
            config = ancestor._registry.get(key)
            if config is not None and config.injector is ancestor and config.result is not None:
                return config
        return None

    def _ancestors(self) -> Iterator[Injector]:
        ancestor = self.parent
        while ancestor is not None:
            yield ancestor
            ancestor = ancestor.parent

    def _depth(self) -> int:
        return sum(1 for _ in self._ancestors())

    def _propagate(self, key: RequestKey, config: InjectionConfig) -> None:
        for child in self._children:
            existing = child._registry.get(key)
            if existing is not None and existing.injector is child:
                continue
            child._registry[key] = config
            child._propagate(key, config)

    def _can_resolve(self, key: RequestKey) -> bool:
        config = self._registry.get(key)
        return config is not None and config.has_response(self)

    def _validate_target(self, cls: type) -> None:
        if not is_instantiable(cls):
            msg = f"{getattr(cls, '__qualname__', cls)!r} is abstract or a protocol and cannot be an injection target"
            raise InvalidTargetError(msg)

    def _validate_impl(self, token: Any, impl: type) -> None:
        """Validate that 'impl' implements 'token' when token is a class/protocol.

        - For normal classes/ABCs: require issubclass(impl, token).
        - For Protocols: nominal via MRO, otherwise every protocol method
          must be present and callable on `impl`.

        Non-class tokens (typing constructs, aliases) are not validated.
        """
        if not inspect.isclass(token) or typing.get_origin(token) is not None:
            return

        if not inspect.isclass(impl):
            msg = f"Implementation {impl!r} for {token.__name__} must be a class"
            raise TypeError(msg)

        if not is_protocol(token):
            if not issubclass(impl, token):
                msg = f"Implementation {impl.__name__} must be a subclass of {token.__name__}"
                raise TypeError(msg)
            return

        if token in impl.__mro__:
            return

        missing = [
            name
            for name in _protocol_methods(token)
            if not callable(getattr(impl, name, None))
        ]
        if missing:
            msg = (
                f"Implementation {impl.__name__} does not structurally conform to protocol "
                f"{token.__name__}: missing members: {', '.join(missing)}"
            )
            raise TypeError(msg)

    def __repr__(self) -> str:
        return f"<Injector depth={self._depth()} rules={len(self._registry)}>"


def _protocol_methods(proto_cls: type) -> list[str]:
    names: list[str] = []
    for klass in proto_cls.__mro__:
        if klass in (object, Protocol, typing.Generic) or not is_protocol(klass):
            continue
        for name, member in vars(klass).items():
            if name.startswith("_") or not inspect.isfunction(member) or name in names:
                continue
            names.append(name)
    return names
