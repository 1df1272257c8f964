"""
Health probing of the installed agent.
"""
from .verifier import AgentVerifier, is_auth_failure, status_summary

__all__ = ["AgentVerifier", "is_auth_failure", "status_summary"]
