"""
Centralized exception definitions for the provisioning agent.
"""
from typing import Any, Dict, Optional


class ErrorContext:
    """Context information for errors."""

    def __init__(self, component: str = None, operation: str = None, **kwargs):
        self.component = component
        self.operation = operation
        self.details = kwargs


class ProvisioningError(Exception):
    """Base class for all provisioning errors."""

    def __init__(self, message: str, context: ErrorContext = None, details: dict = None):
        super().__init__(message)
        self.context = context or ErrorContext()
        self.details = details or {}

    def __str__(self):
        base_str = super().__str__()
        if self.context.component and self.context.operation:
            return f"{base_str} [in {self.context.component}.{self.context.operation}]"
        return base_str


class ValidationError(ProvisioningError, ValueError):
    """Invalid operator input."""
    pass


class HostEnvironmentError(ProvisioningError):
    """A required host capability is missing (service manager, privileges)."""
    pass


class PlatformError(HostEnvironmentError):
    """Unsupported or undetectable platform."""
    pass


class InstallError(ProvisioningError):
    """Download or execution of the vendor bootstrap script failed."""
    pass


class ConfigurationError(ProvisioningError):
    """Writing, reading or probing the agent configuration failed."""
    pass


class PermissionReconcileError(ConfigurationError):
    """A permission step whose failure is fatal did not succeed."""
    pass


class HealthCheckTimeout(ProvisioningError):
    """The agent did not report healthy within the polling budget."""

    def __init__(
        self,
        message: str,
        diagnostics: Optional[Any] = None,
        context: ErrorContext = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, context=context, details=details)
        self.diagnostics = diagnostics


class VerificationError(ProvisioningError):
    """The final status check of the agent failed."""
    pass
