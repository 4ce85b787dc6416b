"""
Tagged results for service boundaries.

WHAT: ``Ok`` / ``Err`` values returned by every public service operation.

WHY: Permission and validation failures are expected outcomes, not
crashes. Returning a tagged value lets callers (routers, schedulers,
tests) branch on ``ErrorKind`` without exceptions crossing module
boundaries.

HOW: Services raise ``AppException`` subclasses internally. The
``as_result`` decorator converts them into ``Err`` at the boundary.
Routers call ``unwrap()`` which re-raises the original exception so the
registered FastAPI handlers render it.
"""

import functools
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar, Union

from app.core.exceptions import EXCEPTION_BY_KIND, AppException, ErrorKind

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying the operation's value."""

    value: T

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying the error kind and a safe message."""

    kind: ErrorKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[AppException] = field(default=None, compare=False, repr=False)

    @property
    def ok(self) -> bool:
        return False

    @classmethod
    def from_exception(cls, exc: AppException) -> "Err":
        return cls(
            kind=exc.kind,
            message=exc.message,
            details=exc.public_context(),
            exception=exc,
        )

    def to_exception(self) -> AppException:
        if self.exception is not None:
            return self.exception
        exc_class = EXCEPTION_BY_KIND[self.kind]
        return exc_class(self.message, **self.details)

    def unwrap(self) -> Any:
        raise self.to_exception()


Result = Union[Ok[T], Err]


def as_result(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[Result[T]]]:
    """
    Wrap an async service method so it returns ``Ok`` or ``Err``.

    Only ``AppException`` is converted; anything else is a bug and
    propagates to the generic 500 handler.
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Result[T]:
        try:
            return Ok(await func(*args, **kwargs))
        except AppException as exc:
            return Err.from_exception(exc)

    return wrapper
