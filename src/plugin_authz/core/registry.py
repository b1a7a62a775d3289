"""
Permission Registry

Static mapping of each permission type to its checker and ingestor.
Implementations are injected at bootstrap; nothing is discovered reflectively.
Route is check-only and never gets an ingestor.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from ..errors import ConfigurationError, UnknownPermissionTypeError
from .types import PermissionType

logger = logging.getLogger(__name__)


class PermissionRegistry:
    """
    Registry of {checker, ingestor} pairs keyed by PermissionType.

    Checkers and ingestors identify their own type through a ``type()`` method.
    Types listed in ``disabled_types`` keep their registration but are reported
    as having no checker, so decisions on them deny.
    """

    def __init__(self, disabled_types: Optional[Iterable[Any]] = None):
        self._checkers: Dict[PermissionType, Any] = {}
        self._ingestors: Dict[PermissionType, Any] = {}
        self._disabled = {PermissionType.coerce(t) for t in (disabled_types or [])}

    # Registration

    def register_checker(self, checker: Any) -> None:
        permission_type = PermissionType.coerce(checker.type())
        if permission_type in self._checkers:
            logger.debug(f"Replacing checker for {permission_type.value}")
        self._checkers[permission_type] = checker

    def register_ingestor(self, ingestor: Any) -> None:
        permission_type = PermissionType.coerce(ingestor.type())
        if not permission_type.ingestible:
            raise ConfigurationError(f"Type '{permission_type.value}' cannot have an ingestor")
        self._ingestors[permission_type] = ingestor

    def disable(self, permission_type: Any) -> None:
        self._disabled.add(PermissionType.coerce(permission_type))

    # Lookup

    def checker_for(self, permission_type: Any) -> Any:
        """Get the checker for a type; raises UnknownPermissionTypeError when absent or disabled."""
        try:
            t = PermissionType.coerce(permission_type)
        except ValueError:
            raise UnknownPermissionTypeError(str(permission_type), role="checker")
        if t in self._disabled or t not in self._checkers:
            raise UnknownPermissionTypeError(t.value, role="checker")
        return self._checkers[t]

    def ingestor_for(self, permission_type: Any) -> Optional[Any]:
        """Get the ingestor for a type, or None (always None for route)."""
        try:
            t = PermissionType.coerce(permission_type)
        except ValueError:
            return None
        return self._ingestors.get(t)

    def has_checker(self, permission_type: Any) -> bool:
        try:
            self.checker_for(permission_type)
        except UnknownPermissionTypeError:
            return False
        return True

    def has_ingestor(self, permission_type: Any) -> bool:
        return self.ingestor_for(permission_type) is not None

    def types(self) -> List[PermissionType]:
        """Types with an enabled checker, in declaration order"""
        return [t for t in PermissionType if t in self._checkers and t not in self._disabled]
