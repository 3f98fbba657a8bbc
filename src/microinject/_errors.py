from __future__ import annotations

from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Sequence


class InvalidBindingError(ValueError):
    """Raised at bind time when the bound types break the binding rules."""


class InjectionError(RuntimeError):
    """Base error for anything that goes wrong while resolving or injecting.

    The wrapped cause, if any, is available as ``__cause__``.
    """


class MissingProviderError(InjectionError):
    pass


class UnresolvedInterfaceError(InjectionError):
    pass


class ProviderError(InjectionError):
    pass


class ConstructionError(InjectionError):
    pass


class PostConstructError(InjectionError):
    pass


class CyclicDependencyError(InjectionError):
    def __init__(self, path: Sequence[type]) -> None:
        self.path = tuple(path)
        chain = " -> ".join(cls.__qualname__ for cls in self.path)
        super().__init__(f"Cyclic dependency detected: {chain}")
