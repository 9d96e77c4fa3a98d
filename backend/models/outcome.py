"""Result types for best-effort steps."""
from dataclasses import dataclass
from typing import Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """The step succeeded."""
    value: T

    @property
    def degraded(self) -> bool:
        return False


@dataclass(frozen=True)
class Degraded(Generic[T]):
    """The step failed and `value` is the fallback that was used instead."""
    value: T
    reason: str

    @property
    def degraded(self) -> bool:
        return True


Outcome = Union[Ok[T], Degraded[T]]
