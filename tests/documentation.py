"""Shared documentation helpers for renderer tests."""

from __future__ import annotations

from typing import Callable, TypeVar

F = TypeVar("F", bound=Callable[..., object])


def documents(note: str) -> Callable[[F], F]:
    """Annotate a test with the rendering contract it enforces.

    The note is prepended to the test's docstring so it shows up in
    pytest's verbose output; the function itself is returned unchanged.
    """

    def decorator(func: F) -> F:
        func.__doc__ = note if func.__doc__ is None else f"{note}\n{func.__doc__}"
        return func

    return decorator


__all__ = ["documents"]
