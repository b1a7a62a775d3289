"""Decision result returned by every check."""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union


@dataclass(frozen=True)
class MorphRef:
    """Reference to the grant that allowed a request."""
    type: str
    id: Union[int, str]

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "id": self.id}


@dataclass(frozen=True)
class Result:
    """ALLOW/DENY decision: {allowed, reason, matched, context}."""
    allowed: bool
    reason: Optional[str] = None
    matched: Optional[MorphRef] = None
    context: Optional[Dict[str, Any]] = None

    @classmethod
    def allow(cls, matched: Optional[MorphRef] = None, context: Optional[Dict[str, Any]] = None) -> "Result":
        return cls(allowed=True, matched=matched, context=context)

    @classmethod
    def deny(cls, reason: str, context: Optional[Dict[str, Any]] = None) -> "Result":
        return cls(allowed=False, reason=reason, context=context)

    def __bool__(self) -> bool:
        return self.allowed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "matched": self.matched.to_dict() if self.matched else None,
            "context": self.context,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Result":
        matched = data.get("matched")
        return cls(
            allowed=bool(data.get("allowed", False)),
            reason=data.get("reason"),
            matched=MorphRef(type=matched["type"], id=matched["id"]) if matched else None,
            context=data.get("context"),
        )
