"""
provisioning-agent: installs, configures and verifies the Datadog agent for a
Node.js service on Linux and macOS hosts.
"""
__version__ = "0.1.0"
