"""Permission type taxonomy."""

from enum import Enum


class PermissionType(str, Enum):
    """Closed set of resource types a plugin can be granted access to"""
    DB = "db"
    FILE = "file"
    NOTIFICATION = "notification"
    MODULE = "module"
    NETWORK = "network"
    CODEC = "codec"
    ROUTE = "route"

    @property
    def ingestible(self) -> bool:
        """Route approvals are recorded at install time, never ingested from manifests"""
        return self is not PermissionType.ROUTE

    @classmethod
    def coerce(cls, value: "PermissionType | str") -> "PermissionType":
        """Accept either the enum or its string value ("notify" is an alias of notification)"""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        if text == "notify":
            text = cls.NOTIFICATION.value
        return cls(text)


INGESTIBLE_TYPES = tuple(t for t in PermissionType if t.ingestible)
