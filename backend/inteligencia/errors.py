"""
Error taxonomy for the generation subsystem

Every error carries the HTTP status the API reports and a public message
that is safe to show to end users (no keys, stack traces or file paths).
"""

from typing import Any, Dict, Optional


class InteligenciaError(Exception):
    """Base exception for all generation subsystem errors"""
    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def public_message(self) -> str:
        return self.message


class ValidationError(InteligenciaError):
    """Malformed or missing caller input"""
    status_code = 400


class NotFoundError(InteligenciaError):
    """Referenced entity does not exist"""
    status_code = 404


class NoProviderAvailable(InteligenciaError):
    """No configured provider passes filtering and capability checks"""
    status_code = 503

    def __init__(self, task_type: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"No suitable provider available for task: {task_type}", details)
        self.task_type = task_type


class ProviderError(InteligenciaError):
    """Wraps any vendor transport or API failure"""
    status_code = 500

    def __init__(self, provider: str, cause: Any, details: Optional[Dict[str, Any]] = None):
        self.provider = provider
        self.cause = cause
        super().__init__(f"{provider}: {cause}", details)

    @property
    def public_message(self) -> str:
        return f"Generation failed with provider {self.provider}: {self.cause}"


class ProviderAuthenticationError(ProviderError):
    """Vendor rejected the API key"""
    pass


class ProviderRateLimitError(ProviderError):
    """Vendor rate limit exceeded"""
    status_code = 429


class ProviderTimeoutError(ProviderError):
    """Vendor request timed out"""
    pass


class UnsupportedCapability(ProviderError):
    """Provider does not support the requested modality"""

    def __init__(self, provider: str, modality: str):
        super().__init__(provider, f"{modality} generation is not supported")
        self.modality = modality


class EncryptionError(InteligenciaError):
    """A crypto primitive failed while encrypting a credential"""
    status_code = 500

    @property
    def public_message(self) -> str:
        return "Failed to encrypt API key"


class DecryptionError(InteligenciaError):
    """Authentication tag check failed: tampering or secret mismatch"""
    status_code = 500

    @property
    def public_message(self) -> str:
        return "Failed to decrypt API key"


class PersistenceError(InteligenciaError):
    """Tree or log write failure"""
    status_code = 500

    @property
    def public_message(self) -> str:
        return "Failed to persist generation data"
