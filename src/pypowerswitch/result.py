"""Result type returned by every PowerSwitchClient network operation.

A call resolves to exactly one of :class:`Ok` or :class:`Err`. Callers that only
care about one branch can ignore the other:

```python
result = await client.request_gateways()
if result.is_ok():
    for gateway in result.value:
        print(gateway.name)
else:
    print(f"{result.error.kind.value}: {result.error}")
```

Code that prefers exceptions can call :meth:`Ok.unwrap` / :meth:`Err.unwrap`,
which returns the value or raises the carried error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, NoReturn, TypeVar

from pypowerswitch.exceptions import PowerSwitchError


__all__ = ["Err", "Ok", "Result"]

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful outcome carrying a value."""

    value: T

    def is_ok(self) -> Literal[True]:
        return True

    def is_err(self) -> Literal[False]:
        return False

    def unwrap(self) -> T:
        """Return the value."""
        return self.value

    def unwrap_or(self, default: U) -> T | U:  # noqa: ARG002
        return self.value


@dataclass(frozen=True)
class Err:
    """Failed outcome carrying a structured error."""

    error: PowerSwitchError

    def is_ok(self) -> Literal[False]:
        return False

    def is_err(self) -> Literal[True]:
        return True

    def unwrap(self) -> NoReturn:
        """Raise the carried error."""
        raise self.error

    def unwrap_or(self, default: U) -> U:
        return default


Result = Ok[T] | Err
