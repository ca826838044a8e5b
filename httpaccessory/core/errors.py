"""Domain-specific errors for httpaccessory."""


class AccessoryError(Exception):
    """Base error for httpaccessory."""


class ConfigValidationError(AccessoryError):
    """Raised when an accessory file does not conform to schema or semantics."""


class ConfigLoadError(AccessoryError):
    """Raised when reading accessory configuration sources fails."""


class TemplateError(AccessoryError):
    """Raised when a write template references an unknown placeholder."""


class TargetSelectionError(AccessoryError):
    """Raised when an accessory or attribute name cannot be resolved to one target."""


class AttributeValueError(AccessoryError):
    """Raised when a value cannot be coerced to an attribute's format."""


class AttributeWriteError(AccessoryError):
    """Raised when a set handler reports a failed write."""


class TransportError(AccessoryError):
    """Base transport error."""


class TransportRequestError(TransportError):
    """Raised when an HTTP exchange fails (connection, DNS, protocol)."""


class TransportTimeoutError(TransportError):
    """Raised when an HTTP exchange times out."""
