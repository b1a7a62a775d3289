"""
Authorization Engine Errors

Exceptions raised by ingestion, persistence and configuration code.
Decision paths never raise these to callers; they resolve to a deny Result.
"""


class AuthzError(Exception):
    """Base class for all plugin_authz errors"""


class ConfigurationError(AuthzError):
    """Invalid or inconsistent engine configuration"""


class UnknownPermissionTypeError(AuthzError):
    """No checker or ingestor is registered for a permission type"""

    def __init__(self, permission_type: str, role: str = "checker"):
        super().__init__(f"No {role} registered for type '{permission_type}'")
        self.permission_type = permission_type
        self.role = role


class InvalidRuleError(AuthzError):
    """A manifest rule cannot be mapped onto a concrete permission row"""


class PersistenceError(AuthzError):
    """The backing store rejected a write"""


class DuplicateNaturalKeyError(PersistenceError):
    """A second concrete row was about to be stored under an existing natural key"""

    def __init__(self, permission_type: str, natural_key: str):
        super().__init__(
            f"Concrete {permission_type} row already exists for natural key {natural_key[:12]}..."
        )
        self.permission_type = permission_type
        self.natural_key = natural_key
