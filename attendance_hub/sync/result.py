"""Explicit success/failure values for the remote-then-local policy.

Each backend attempt is wrapped into a `Result` instead of relying on nested
try/except blocks, so the fallback rule reads as one expression:

    outcome = await or_else(await attempt(remote_op), local_op)
    return outcome.unwrap()
"""
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Union


@dataclass(frozen=True)
class Ok:
    value: Any = None

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> Any:
        return self.value


@dataclass(frozen=True)
class Err:
    error: Exception

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> Any:
        raise self.error


Result = Union[Ok, Err]


async def attempt(operation: Callable[[], Awaitable[Any]]) -> Result:
    """Await `operation()` and capture any ordinary exception as `Err`."""
    try:
        return Ok(await operation())
    except Exception as e:
        return Err(e)


async def or_else(result: Result, fallback: Callable[[], Awaitable[Any]]) -> Result:
    if result.ok:
        return result
    return await attempt(fallback)
