from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar


if TYPE_CHECKING:
    from collections.abc import Callable

    C = TypeVar("C", bound=type)
    F = TypeVar("F", bound=Callable[..., Any])


_SINGLETON_ATTR = "__microinject_singleton__"
_POST_CONSTRUCT_ATTR = "__microinject_post_construct__"


class Inject:
    """Marks an annotated class attribute for field injection.

    Example:
      class Service:
          repo: Annotated[Repo, Inject]

    """

    def __repr__(self) -> str:
        return "Inject()"


def is_inject_marker(meta: object) -> bool:
    return meta is Inject or isinstance(meta, Inject)


def singleton(cls: C) -> C:
    """Declare `cls` singleton-scoped. Not inherited by subclasses."""
    setattr(cls, _SINGLETON_ATTR, True)
    return cls


def is_singleton_declared(cls: type) -> bool:
    # look only at the class's own namespace
    return bool(cls.__dict__.get(_SINGLETON_ATTR, False))


def post_construct(fn: F) -> F:
    """Declare a method to be called once after construction and injection.

    Only public instance methods qualify. Decorating a private method, a
    staticmethod or a classmethod raises InjectionError when the class is
    first resolved.
    """
    setattr(fn, _POST_CONSTRUCT_ATTR, True)
    return fn


def is_post_construct(fn: object) -> bool:
    return bool(getattr(fn, _POST_CONSTRUCT_ATTR, False))
