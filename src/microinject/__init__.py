"""Minimal dependency injection container.

This package provides a small dependency injection container for Python that
resolves classes into fully wired object graphs using field injection and
no-argument construction.

Exports:
- `Container`: Holds bindings (protocol mappings, instances, providers) and resolves types.
- `Inject`: Marker for injectable fields, used as `Annotated[Service, Inject]`.
- `singleton`: Class decorator declaring that a class has a single shared instance.
- `post_construct`: Method decorator for hooks run once after injection.
- Errors: `InjectionError` and its subclasses for resolution failures,
  `InvalidBindingError` for invalid bindings.
"""

import logging

from ._container import Container
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
from ._markers import Inject, post_construct, singleton


logging.getLogger(__name__).addHandler(logging.NullHandler())


__all__ = [
    "ConstructionError",
    "Container",
    "CyclicDependencyError",
    "Inject",
    "InjectionError",
    "InvalidBindingError",
    "MissingProviderError",
    "PostConstructError",
    "ProviderError",
    "UnresolvedInterfaceError",
    "post_construct",
    "singleton",
]
