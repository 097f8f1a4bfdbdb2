"""Result type for governance operations with best-effort side effects."""

from dataclasses import dataclass, field
from typing import Generic, List, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class SideEffectWarning:
    """A non-critical side effect that failed after the primary write committed."""
    effect: str
    message: str

    def to_dict(self) -> dict:
        return {"effect": self.effect, "message": self.message}


@dataclass
class Outcome(Generic[T]):
    """Committed result of an operation plus any side-effect warnings."""
    committed: T
    warnings: List[SideEffectWarning] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.warnings

    def warn(self, effect: str, exc: BaseException) -> None:
        self.warnings.append(SideEffectWarning(effect=effect, message=str(exc) or type(exc).__name__))

    def extend(self, warnings: List[SideEffectWarning]) -> None:
        self.warnings.extend(warnings)
