"""
DOCFLOW LOGGING - Process Logging and Conversation Transcripts

Two concerns live here:
- setup_logging(): one-time configuration of the stdlib logging tree, rendered
  through rich so log lines do not fight with the chat output
- TranscriptLogger: append-only JSONL transcript of a conversation, one Turn
  per line, rotated daily

Usage:
    setup_logging("INFO")

    transcript = TranscriptLogger(Path("./logs"), session_id="conv-1234")
    transcript.write(turn)
    turns = transcript.read_log("2024-01-01")
"""
import logging
import threading
import io
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, List, Union

import msgspec
from rich.console import Console
from rich.logging import RichHandler

from core.schemas import Turn


# =============================================================================
# PROCESS LOGGING
# =============================================================================

def setup_logging(level: Union[str, int] = "WARNING") -> None:
    """Configure root logging once. Output goes to stderr."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(name)s: %(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # Provider SDKs are chatty at INFO
    for noisy in ("LiteLLM", "litellm", "httpx", "urllib3"):
        logging.getLogger(noisy).setLevel(max(level, logging.WARNING))


# =============================================================================
# TRANSCRIPT LOGGER
# =============================================================================

class TranscriptLogger:
    """
    File-based transcript logger.

    Writes turns as newline-delimited JSON for easy parsing.
    Rotates logs daily: transcript_<session>_<YYYY-MM-DD>.jsonl
    """

    def __init__(self, log_path: Path, session_id: str):
        self._log_path = Path(log_path)
        self._session_id = session_id
        self._current_file: Optional[io.TextIOWrapper] = None
        self._current_date: Optional[str] = None
        self._lock = threading.Lock()
        self._encoder = msgspec.json.Encoder()

        # Ensure log directory exists
        self._log_path.mkdir(parents=True, exist_ok=True)

    def _filename(self, date: str) -> Path:
        return self._log_path / f"transcript_{self._session_id}_{date}.jsonl"

    def write(self, turn: Turn) -> None:
        """Append a turn to today's transcript."""
        with self._lock:
            self._ensure_file()
            self._current_file.write(self._encoder.encode(turn).decode("utf-8") + "\n")
            self._current_file.flush()

    def _ensure_file(self) -> None:
        """Ensure we have a valid file handle for today."""
        today = datetime.now(timezone.utc).strftime("%Y-%m-%d")

        if self._current_date != today:
            if self._current_file:
                self._current_file.close()
            self._current_file = open(self._filename(today), "a", encoding="utf-8")
            self._current_date = today

    def close(self) -> None:
        """Close the file handle."""
        with self._lock:
            if self._current_file:
                self._current_file.close()
                self._current_file = None

    def read_log(self, date: str) -> List[Turn]:
        """Read turns from a specific date's transcript. Corrupt lines are skipped."""
        filepath = self._filename(date)
        if not filepath.exists():
            return []

        turns = []
        decoder = msgspec.json.Decoder(type=Turn)

        with open(filepath, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    turns.append(decoder.decode(line.encode()))
                except msgspec.DecodeError:
                    logging.getLogger(__name__).warning(f"Skipping corrupt transcript line in {filepath.name}")

        return turns
