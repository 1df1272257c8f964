"""Interactive prompting on a rich console."""
from typing import Optional

from rich.console import Console
from rich.prompt import Confirm, Prompt

from ..error.exceptions import ValidationError


class Prompter:
    """Asks the operator for values; end of input is a validation failure."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def ask(self, message: str, default: Optional[str] = None, password: bool = False) -> str:
        try:
            answer = Prompt.ask(
                message,
                console=self.console,
                default=default,
                password=password,
                show_default=not password and default is not None,
            )
        except (EOFError, KeyboardInterrupt):
            raise ValidationError(f"No input available for: {message}")
        return answer if answer is not None else ""

    def confirm(self, message: str, default: bool = False) -> bool:
        try:
            return Confirm.ask(message, console=self.console, default=default)
        except (EOFError, KeyboardInterrupt):
            raise ValidationError(f"No input available for: {message}")

    def note(self, message: str) -> None:
        self.console.print(message)
