class SentinelError(Exception):
    """Base exception for status sentinel errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: dict | None = None,
    ):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        result = {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }
        if self.details:
            result["error"]["details"] = self.details
        return result


class ConfigError(SentinelError):
    """Bootstrap configuration is missing or malformed. Fatal."""

    def __init__(self, message: str = "Invalid configuration.", details: dict | None = None):
        super().__init__(code="config_error", message=message, details=details)


class TransportError(SentinelError):
    """Network-layer failure during a probe."""

    def __init__(self, message: str = "Connection failed.", details: dict | None = None):
        super().__init__(code="transport_error", message=message, details=details)


class ProtocolError(SentinelError):
    """Malformed binary-protocol data."""

    def __init__(self, message: str = "Malformed protocol data.", details: dict | None = None):
        super().__init__(code="protocol_error", message=message, details=details)


class StorageError(SentinelError):
    def __init__(self, message: str = "Storage operation failed.", details: dict | None = None):
        super().__init__(code="storage_error", message=message, details=details)


class IdentifierError(SentinelError):
    def __init__(self, message: str = "Invalid service name.", details: dict | None = None):
        super().__init__(code="invalid_identifier", message=message, details=details)
