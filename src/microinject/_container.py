from __future__ import annotations

import inspect
import logging
import sys
import threading
import typing
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import (
    TYPE_CHECKING,
    Annotated,
    Any,
    TypeVar,
    cast,
    get_args,
    get_origin,
)

from ._errors import (
    ConstructionError,
    CyclicDependencyError,
    InjectionError,
    InvalidBindingError,
    MissingProviderError,
    PostConstructError,
    ProviderError,
    UnresolvedInterfaceError,
)
from ._markers import is_inject_marker, is_post_construct, is_singleton_declared


logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    T = TypeVar("T")

    Provider = Callable[[], T]


@dataclass
class Registry:
    """Bindings known to a container. Insert and lookup only."""

    interfaces: dict[type, type] = field(default_factory=dict)
    providers: dict[type, Callable[[], object]] = field(default_factory=dict)
    singletons: set[type] = field(default_factory=set)  # forced singleton scope


@dataclass(frozen=True)
class Manifest:
    """Injectable fields and post-construct hooks of a class."""

    fields: tuple[tuple[str, type], ...]
    hooks: tuple[str, ...]


class Container:
    """Minimal DI container.

    - bind protocols to implementations, pre-built instances, or providers
    - resolve with field injection and no-argument construction
    - scopes: singleton / transient
    - post-construct hooks.
    """

    def __init__(self, *, detect_cycles: bool = True) -> None:
        self._registry = Registry()
        self._singleton_instances: dict[type, object] = {}
        self._instantiator = Instantiator(self)
        self._detect_cycles = detect_cycles
        self._resolving: list[type] = []
        self._lock = threading.RLock()

    def bind_interface(self, interface_type: type[T], implementation_type: type[T]) -> None:
        """Map a Protocol to the concrete class that satisfies it.

        Example:
          container.bind_interface(Logger, ConsoleLogger)

        """
        if not _is_protocol(interface_type):
            msg = f"Expecting the first argument to be a Protocol class, got {interface_type!r}"
            raise InvalidBindingError(msg)

        if not inspect.isclass(implementation_type) or _is_protocol(implementation_type) or inspect.isabstract(
            implementation_type
        ):
            msg = f"Expecting the second argument to be a concrete implementing class, got {implementation_type!r}"
            raise InvalidBindingError(msg)

        _validate_protocol_impl(interface_type, implementation_type)

        with self._lock:
            self._registry.interfaces[interface_type] = implementation_type
        logger.debug("Bound %s to %s", interface_type.__qualname__, implementation_type.__qualname__)

    def bind_instance(self, class_type: type[T], instance: T) -> None:
        """Bind a pre-built instance. It is returned as-is on every request."""
        _require_class(class_type)
        if _is_protocol(class_type):
            _validate_protocol_impl(class_type, instance)
        elif not isinstance(instance, class_type):
            msg = f"Instance of {type(instance).__name__} is not an instance of {class_type.__name__}"
            raise InvalidBindingError(msg)

        self.bind_provider(class_type, lambda: instance)

    def bind_provider(self, class_type: type[T], provider: Provider[T]) -> None:
        """Bind a zero-argument factory, replacing any previous one for the type."""
        _require_class(class_type)
        if not callable(provider):
            msg = f"Provider for {class_type.__name__} must be callable, got {provider!r}"
            raise InvalidBindingError(msg)

        with self._lock:
            self._registry.providers[class_type] = provider
        logger.debug("Bound provider for %s", class_type.__qualname__)

    def mark_singleton(self, class_type: type) -> None:
        """Force singleton scope for a class that is not declared with @singleton."""
        _require_class(class_type)
        with self._lock:
            self._registry.singletons.add(class_type)

    def is_singleton(self, class_type: type) -> bool:
        return is_singleton_declared(class_type) or class_type in self._registry.singletons

    def get_instance(self, requested_type: type[T]) -> T:  # noqa: C901
        """Resolve `requested_type` to an instance.

        - Abstract classes need a provider.
        - Protocols follow their interface mapping first, then their own provider.
        - Cached singletons are returned without re-injection.
        - Otherwise a registered provider is used, or the class is constructed and injected.
        """
        if not inspect.isclass(requested_type):
            msg = f"Expecting a class to resolve, got {requested_type!r}"
            raise TypeError(msg)

        with self._lock:
            registry = self._registry

            if _is_abstract(requested_type):
                if requested_type in registry.providers:
                    return cast("T", self._from_provider(requested_type))
                msg = f"Missing provider for abstract class: {_name(requested_type)}"
                raise MissingProviderError(msg)

            concrete_type: type = requested_type

            if _is_protocol(requested_type):
                if requested_type in registry.interfaces:
                    concrete_type = registry.interfaces[requested_type]
                elif requested_type in registry.providers:
                    return cast("T", self._from_provider(requested_type))
                else:
                    msg = f"No binding or provider for interface: {_name(requested_type)}"
                    raise UnresolvedInterfaceError(msg)

            if concrete_type in self._singleton_instances:
                return cast("T", self._singleton_instances[concrete_type])

            if concrete_type in registry.providers:
                instance = self._from_provider(concrete_type)
                if self.is_singleton(concrete_type):
                    instance = self._register_singleton(concrete_type, instance)
                return cast("T", instance)

            return cast("T", self._instantiator.create(concrete_type))

    def inject(self, instance: object) -> None:
        """Wire the injectable fields of an instance built outside the container."""
        with self._lock:
            self._instantiator.inject(instance)

    def _from_provider(self, class_type: type) -> object:
        provider = self._registry.providers[class_type]
        with self._track(class_type):
            try:
                return provider()
            except Exception as e:
                msg = f"Provider for {_name(class_type)} raised {type(e).__name__}: {e}"
                raise ProviderError(msg) from e

    def _register_singleton(self, class_type: type, instance: object) -> object:
        # first instance wins
        cached = self._singleton_instances.setdefault(class_type, instance)
        if cached is instance:
            logger.debug("Cached singleton %s", class_type.__qualname__)
        return cached

    @contextmanager
    def _track(self, class_type: type) -> Iterator[None]:
        """Push `class_type` on the resolution stack for the duration of a build."""
        if self._detect_cycles and class_type in self._resolving:
            start = self._resolving.index(class_type)
            cycle = self._resolving[start:]
            # a cached singleton in the loop ends the recursion on the next pass
            if not any(cls in self._singleton_instances for cls in cycle):
                raise CyclicDependencyError([*cycle, class_type])

        self._resolving.append(class_type)
        try:
            yield
        finally:
            self._resolving.pop()


class Instantiator:
    def __init__(self, container: Container) -> None:
        self._container = container
        self._manifests: dict[type, Manifest] = {}

    def create(self, cls: type[T]) -> T:
        manifest = self.manifest(cls)

        with self._container._track(cls):  # noqa: SLF001
            try:
                instance = cls()
            except Exception as e:
                msg = f"Cannot construct {_name(cls)} without arguments: {e}"
                raise ConstructionError(msg) from e
            logger.debug("Constructed %s", cls.__qualname__)

            # cache before injection so singleton cycles observe this instance
            if self._container.is_singleton(cls):
                self._container._register_singleton(cls, instance)  # noqa: SLF001

            self._inject_fields(instance, manifest)
            self._call_post_construct(instance, manifest)

        return instance

    def inject(self, instance: object) -> None:
        self._inject_fields(instance, self.manifest(type(instance)))

    def manifest(self, cls: type) -> Manifest:
        manifest = self._manifests.get(cls)
        if manifest is None:
            manifest = Manifest(fields=_injectable_fields(cls), hooks=_post_construct_hooks(cls))
            self._manifests[cls] = manifest
        return manifest

    def _inject_fields(self, instance: object, manifest: Manifest) -> None:
        for name, declared_type in manifest.fields:
            value = self._container.get_instance(declared_type)
            object.__setattr__(instance, name, value)

    def _call_post_construct(self, instance: object, manifest: Manifest) -> None:
        for name in manifest.hooks:
            try:
                getattr(instance, name)()
            except Exception as e:
                msg = f"Post-construct hook {type(instance).__name__}.{name} raised {type(e).__name__}: {e}"
                raise PostConstructError(msg) from e


def _injectable_fields(cls: type) -> tuple[tuple[str, type], ...]:
    """Collect `Annotated[T, Inject]` attributes, subclass first, each name once.

    String annotations are only evaluated when they mention `Inject`, so names
    imported under TYPE_CHECKING do not break construction.
    """
    fields: list[tuple[str, type]] = []
    seen: set[str] = set()
    for klass in cls.__mro__:
        for name, hint in _raw_annotations(klass).items():
            if name in seen:
                continue
            seen.add(name)

            if isinstance(hint, str):
                if "Inject" not in hint:
                    continue
                hint = _evaluate_annotation(klass, name, hint)

            if get_origin(hint) is not Annotated:
                continue
            declared_type, *metadata = get_args(hint)
            if not any(is_inject_marker(meta) for meta in metadata):
                continue

            if not inspect.isclass(declared_type):
                msg = f"Injectable field '{name}' of {_name(cls)} must be annotated with a class, got {declared_type!r}"
                raise InjectionError(msg)
            fields.append((name, declared_type))

    return tuple(fields)


def _raw_annotations(klass: type) -> dict[str, Any]:
    try:
        return inspect.get_annotations(klass)
    except NameError:
        # deferred annotations naming undefined types (3.14+)
        import annotationlib

        return inspect.get_annotations(klass, format=annotationlib.Format.STRING)


def _evaluate_annotation(klass: type, name: str, hint: str) -> Any:
    module = sys.modules.get(klass.__module__)
    globalns = getattr(module, "__dict__", {})
    try:
        return eval(hint, globalns, dict(vars(klass)))
    except (NameError, AttributeError, SyntaxError, TypeError) as e:
        msg = f"Cannot evaluate annotation of '{name}' on {_name(klass)}: {e}"
        raise InjectionError(msg) from e


def _post_construct_hooks(cls: type) -> tuple[str, ...]:
    hooks = []
    for name in dir(cls):
        attr = inspect.getattr_static(cls, name, None)
        fn = attr.__func__ if isinstance(attr, (staticmethod, classmethod)) else attr
        if not inspect.isfunction(fn) or not (is_post_construct(attr) or is_post_construct(fn)):
            continue

        if fn is not attr or name.startswith("_"):
            msg = f"Post-construct hook {cls.__qualname__}.{name} must be a public instance method"
            raise InjectionError(msg)
        hooks.append(name)
    return tuple(hooks)


def _require_class(tp: object) -> None:
    if not inspect.isclass(tp):
        msg = f"Binding keys must be classes, got {tp!r}"
        raise InvalidBindingError(msg)


def _name(tp: type) -> str:
    return f"{tp.__module__}.{tp.__qualname__}"


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def _is_protocol(tp: object) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def _is_protocol(tp: object) -> bool:
        """Detect whether 'tp' is itself a Protocol, not just a subclass of one."""
        return inspect.isclass(tp) and tp is not typing.Protocol and bool(getattr(tp, "_is_protocol", False))


def _is_abstract(tp: type) -> bool:
    return not _is_protocol(tp) and inspect.isabstract(tp)


def _protocol_members(proto_cls: type) -> tuple[set[str], dict[str, Any]]:
    attributes: set[str] = set()
    methods: dict[str, Any] = {}
    for klass in reversed(proto_cls.__mro__):
        if not _is_protocol(klass):
            continue
        attributes.update(_raw_annotations(klass))
        for name, attr in klass.__dict__.items():
            if inspect.isfunction(attr):
                methods[name] = attr
    public_attributes = {name for name in attributes if not name.startswith("_")}
    public_methods = {name: fn for name, fn in methods.items() if not name.startswith("_")}
    return public_attributes, public_methods


def _validate_protocol_impl(proto_cls: type, impl: object) -> None:
    """Validate that 'impl' (a class or an instance) satisfies 'proto_cls'.

    Nominal conformance via the MRO is enough; otherwise check members are present
    and methods accept at least as many required positional parameters.
    """
    impl_cls = impl if inspect.isclass(impl) else type(impl)
    if proto_cls in impl_cls.__mro__:
        return

    attributes, methods = _protocol_members(proto_cls)
    declared = set().union(*(set(_raw_annotations(k)) for k in impl_cls.__mro__)) if impl is impl_cls else set()
    missing = sorted(name for name in attributes | set(methods) if not hasattr(impl, name) and name not in declared)
    signature_mismatches: list[str] = []

    for name, proto_attr in methods.items():
        if name in missing:
            continue

        impl_attr = getattr(impl, name)
        if not callable(impl_attr):
            signature_mismatches.append(f"{name}: not callable on {impl_cls.__name__}")
            continue

        try:
            proto_params = [p for p in inspect.signature(proto_attr).parameters.values() if p.name != "self"]
            impl_params = [p for p in inspect.signature(impl_attr).parameters.values() if p.name != "self"]
        except (TypeError, ValueError):
            # builtins without signatures cannot be compared
            continue

        if _accepts_positional(impl_params) < _required_positional(proto_params):
            signature_mismatches.append(
                f"{name}: impl accepts fewer positional params "
                f"({_accepts_positional(impl_params)}) than protocol requires "
                f"({_required_positional(proto_params)})"
            )

    if missing or signature_mismatches:
        msgs = []
        if missing:
            msgs.append(f"missing members: {', '.join(missing)}")
        if signature_mismatches:
            msgs.append(f"signature mismatches: {', '.join(signature_mismatches)}")

        msg = f"{impl_cls.__name__} does not conform to protocol {proto_cls.__name__}: {'; '.join(msgs)}"
        raise InvalidBindingError(msg)


def _required_positional(params: list[inspect.Parameter]) -> int:
    return sum(
        1
        for p in params
        if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
        and p.default is inspect.Parameter.empty
    )


def _accepts_positional(params: list[inspect.Parameter]) -> float:
    if any(p.kind is inspect.Parameter.VAR_POSITIONAL for p in params):
        return float("inf")
    return sum(
        1 for p in params if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD)
    )
