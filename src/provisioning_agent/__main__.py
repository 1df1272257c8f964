"""Allow ``python -m provisioning_agent``."""
from .cli import app

if __name__ == "__main__":
    app(prog_name="provisioning-agent")
