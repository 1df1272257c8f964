"""Agent service supervision."""
from .supervisor import Clock, DiagnosticBundle, ServiceSupervisor

__all__ = ["Clock", "DiagnosticBundle", "ServiceSupervisor"]
