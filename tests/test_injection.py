import unittest
from typing import Annotated
from unittest.mock import MagicMock

import pytest

from fieldbind import (
    Inject,
    Injector,
    MissingMappingError,
    Result,
    describe_injection_points,
    post_inject,
    request_key,
)


class Interface1: ...


class ClassA(Interface1): ...


class ClassB(Interface1): ...


class Client:
    plain: Annotated[Interface1, Inject()]
    named: Annotated[Interface1, Inject("x")]
    not_injected: int = 0


class Mailer: ...


class Templates: ...


class Notifier:
    mailer: Annotated[Mailer, Inject()]
    templates: Annotated[Templates, Inject()]


class BaseService:
    mailer: Annotated[Mailer, Inject()]
    url: Annotated[str, Inject("base_url")]


class DerivedService(BaseService):
    url: Annotated[str, Inject("derived_url")]
    templates: Annotated[Templates, Inject()]


class Hooked:
    mailer: Annotated[Mailer, Inject()]

    def __init__(self):
        self.calls = []

    @post_inject(order=2)
    def second(self):
        self.calls.append("second")

    @post_inject
    def first(self):
        assert isinstance(self.mailer, Mailer)
        self.calls.append("first")


class HookedChild(Hooked):
    def second(self):
        self.calls.append("not a hook")

    @post_inject(order=1)
    def middle(self):
        self.calls.append("middle")


def test_named_and_unnamed_fields_receive_their_own_rule():
    injector = Injector()
    a, b = ClassA(), ClassB()
    injector.map_value(Interface1, a)
    injector.map_value(Interface1, b, "x")

    client = injector.inject_into(Client())

    assert client.plain is a
    assert client.named is b
    assert client.not_injected == 0


def test_describe_injection_points_lists_marked_fields_only():
    points = describe_injection_points(Client)

    assert [p.field for p in points] == ["plain", "named"]
    assert points[0].key == request_key(Interface1)
    assert points[1].key == request_key(Interface1, "x")


def test_describe_injection_points_walks_ancestry_once_per_field():
    points = describe_injection_points(DerivedService)

    assert [p.field for p in points] == ["mailer", "url", "templates"]
    # the subclass declaration wins
    assert points[1].key == request_key(str, "derived_url")


def test_inherited_fields_are_injected():
    injector = Injector()
    injector.map_singleton(Mailer)
    injector.map_singleton(Templates)
    injector.map_value(str, "https://derived", "derived_url")

    svc = injector.instantiate(DerivedService)

    assert svc.mailer is injector.get_instance(Mailer)
    assert svc.templates is injector.get_instance(Templates)
    assert svc.url == "https://derived"


def test_partial_injection_leaves_earlier_fields_written():
    injector = Injector()
    mailer = Mailer()
    injector.map_value(Mailer, mailer)
    target = Notifier()

    with pytest.raises(MissingMappingError) as ctx:
        injector.inject_into(target)

    assert target.mailer is mailer
    assert not hasattr(target, "templates")
    assert ctx.value.field == "templates"
    assert ctx.value.target is Notifier
    assert ctx.value.for_type is Templates
    assert "'templates'" in str(ctx.value)
    assert "Notifier" in str(ctx.value)


def test_missing_mappings_allows_validating_before_injection():
    injector = Injector()
    injector.map_value(Mailer, Mailer())

    missing = injector.missing_mappings(Notifier)

    assert [p.field for p in missing] == ["templates"]

    injector.map_class(Templates, Templates)
    assert injector.missing_mappings(Notifier) == []


def test_unmapped_dependency_of_class_rule_fails_resolution():
    injector = Injector()
    injector.map_class(Notifier, Notifier)

    with pytest.raises(MissingMappingError):
        injector.get_instance(Notifier)


class TestConstruction(unittest.TestCase):
    injector: Injector

    def setUp(self):
        self.injector = Injector()
        self.injector.map_singleton(Mailer)
        self.injector.map_singleton(Templates)

    def test_construct_does_not_inject(self):
        notifier = self.injector.construct(Notifier)

        assert isinstance(notifier, Notifier)
        assert not hasattr(notifier, "mailer")

    def test_instantiate_always_returns_new_instance(self):
        self.injector.map_singleton(Notifier)

        n1 = self.injector.instantiate(Notifier)
        n2 = self.injector.instantiate(Notifier)

        assert n1 is not n2
        assert n1 is not self.injector.get_instance(Notifier)
        assert n1.mailer is n2.mailer

    def test_inject_into_returns_target(self):
        target = Notifier()
        assert self.injector.inject_into(target) is target

    def test_field_receives_injector_itself(self):
        class NeedsInjector:
            injector: Annotated[Injector, Inject()]

        obj = self.injector.instantiate(NeedsInjector)
        assert obj.injector is self.injector


class TestPostInjectHooks(unittest.TestCase):
    injector: Injector

    def setUp(self):
        self.injector = Injector()
        self.injector.map_class(Mailer, Mailer)

    def test_hooks_run_after_fields_in_order(self):
        obj = self.injector.instantiate(Hooked)
        assert obj.calls == ["first", "second"]

    def test_subclass_override_replaces_hook(self):
        obj = self.injector.instantiate(HookedChild)
        assert obj.calls == ["first", "middle"]

    def test_hooks_run_on_every_injection(self):
        obj = Hooked()
        obj.first = MagicMock()
        self.injector.inject_into(obj)
        self.injector.inject_into(obj)

        assert obj.first.call_count == 2
        assert obj.calls == ["second", "second"]


class Aliased:
    mailer: Annotated[Mailer, Inject()]
    templates: Annotated[Templates, Inject("alias")]


class TestAliasToClearedRuleInjection(unittest.TestCase):
    injector: Injector

    def setUp(self):
        self.injector = Injector()
        self.injector.map_class(Mailer, Mailer)
        rule = self.injector.map_singleton(Templates)
        self.injector.map_rule(Templates, rule, "alias")
        self.injector.unmap(Templates)

    def test_missing_mappings_reports_alias_field(self):
        missing = self.injector.missing_mappings(Aliased)

        assert [p.field for p in missing] == ["templates"]
        assert missing[0].key == request_key(Templates, "alias")

    def test_inject_into_names_alias_field_and_target(self):
        target = Aliased()

        with pytest.raises(MissingMappingError) as ctx:
            self.injector.inject_into(target)

        assert isinstance(target.mailer, Mailer)
        assert ctx.value.field == "templates"
        assert ctx.value.target is Aliased
        assert ctx.value.name == "alias"


class Unavailable(Result):
    def resolve(self, injector):
        raise MissingMappingError(Templates, "remote")


def test_missing_mapping_raised_while_resolving_is_attributed_to_field():
    injector = Injector()
    injector.map_class(Mailer, Mailer)
    injector.get_mapping(Templates, "alias").set_result(Unavailable())

    with pytest.raises(MissingMappingError) as ctx:
        injector.inject_into(Aliased())

    assert ctx.value.field == "templates"
    assert ctx.value.target is Aliased
    assert isinstance(ctx.value.__cause__, MissingMappingError)
    assert ctx.value.__cause__.name == "remote"
