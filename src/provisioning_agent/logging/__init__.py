"""Logging setup for the provisioning agent."""
from .config import JsonFormatter, LogConfig, SecretRedactionFilter

__all__ = ["JsonFormatter", "LogConfig", "SecretRedactionFilter"]
