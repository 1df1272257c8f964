"""Agent detection and installation."""
from .installer import AgentInstaller, InstallDecision, InstallState, secure_temp_file, select_temp_dir

__all__ = ["AgentInstaller", "InstallDecision", "InstallState", "secure_temp_file", "select_temp_dir"]
