"""Error types for the provisioning agent."""
from .exceptions import (
    ConfigurationError,
    ErrorContext,
    HealthCheckTimeout,
    HostEnvironmentError,
    InstallError,
    PermissionReconcileError,
    PlatformError,
    ProvisioningError,
    ValidationError,
    VerificationError,
)

__all__ = [
    "ConfigurationError",
    "ErrorContext",
    "HealthCheckTimeout",
    "HostEnvironmentError",
    "InstallError",
    "PermissionReconcileError",
    "PlatformError",
    "ProvisioningError",
    "ValidationError",
    "VerificationError",
]
