"""
Custom exceptions for Kusto connection parsing and authentication.
"""

class KustoAuthError(Exception):
    """Base exception for all connection/auth errors."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.details = details or {}

class ConnectionStringError(KustoAuthError):
    """Raised when a connection string cannot be parsed."""
    pass

class ValidationError(KustoAuthError):
    """Raised when required connection fields are missing or inconsistent."""
    pass

class ConfigurationError(KustoAuthError):
    """Raised when there is a configuration issue."""
    pass

class TokenProviderError(KustoAuthError):
    """Raised when a credential cannot be built or a token cannot be acquired."""
    pass
