"""
DOCFLOW HUMAN LOOP - The Chat Boundary

The orchestrator talks to the person on the other side only through a
ChatUI sink:

    prompt_text(label)            blocking single-line read
    print_assistant_header(label) start of an assistant message
    append_assistant_chunk(text)  streamed text, as it arrives
    end_assistant_message()       explicit end-of-message marker

ConsoleChatUI renders to the terminal with rich. End of input (Ctrl-D) and
interrupt (Ctrl-C) raise ConversationCancelled, which propagates untouched
through the orchestrator and ends the command.
"""
from typing import Optional

from rich.console import Console


class ConversationCancelled(Exception):
    """The user aborted input; the whole conversation attempt ends."""
    pass


class ChatUI:
    """User interface sink. Subclasses implement the four primitives."""

    def prompt_text(self, label: str = "You") -> str:
        raise NotImplementedError

    def print_assistant_header(self, label: str = "AI") -> None:
        raise NotImplementedError

    def append_assistant_chunk(self, text: str) -> None:
        raise NotImplementedError

    def end_assistant_message(self) -> None:
        raise NotImplementedError

    def show_assistant_text(self, text: str, label: str = "AI") -> None:
        """Render a complete (non-streamed) assistant message."""
        self.print_assistant_header(label)
        self.append_assistant_chunk(text)
        self.end_assistant_message()

    def ask_yes_no(self, question: str, default_yes: bool = True) -> bool:
        self.show_assistant_text(question + (" (Y/n)" if default_yes else " (y/N)"))
        answer = self.prompt_text().strip().lower()
        if not answer:
            return default_yes
        if answer in ("y", "yes"):
            return True
        if answer in ("n", "no"):
            return False
        return default_yes

    def close(self) -> None:
        pass


class ConsoleChatUI(ChatUI):
    """Terminal chat rendered with rich."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def prompt_text(self, label: str = "You") -> str:
        try:
            answer = self.console.input(f"[bold cyan]{label}:[/] ")
        except (EOFError, KeyboardInterrupt) as e:
            self.console.print()
            raise ConversationCancelled("Operation cancelled.") from e
        return answer.strip()

    def print_assistant_header(self, label: str = "AI") -> None:
        self.console.print()
        self.console.print(f"[bold magenta]{label}:[/] ", end="")

    def append_assistant_chunk(self, text: str) -> None:
        # Chunks are raw model output; do not interpret rich markup in them
        self.console.print(text, end="", markup=False, highlight=False, soft_wrap=True)

    def end_assistant_message(self) -> None:
        self.console.print()
