"""Host utilities: platform detection and command execution."""
