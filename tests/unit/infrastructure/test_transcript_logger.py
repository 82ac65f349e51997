"""
Tests for the JSONL transcript logger and logging setup.
"""
import logging
from datetime import datetime, timezone

from core.schemas import Turn, TurnRole
from infrastructure.logger import TranscriptLogger, setup_logging


def today():
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


class TestTranscriptLogger:
    def test_write_and_read(self, tmp_path):
        transcript = TranscriptLogger(tmp_path / "logs", "conv-1")
        turns = [
            Turn.create(TurnRole.ASSISTANT, "What is it?", agent_id="discovery-default"),
            Turn.create(TurnRole.USER, "A habit tracker"),
        ]
        for turn in turns:
            transcript.write(turn)
        transcript.close()

        assert transcript.read_log(today()) == turns
        assert (tmp_path / "logs" / f"transcript_conv-1_{today()}.jsonl").exists()

    def test_camel_case_lines(self, tmp_path):
        transcript = TranscriptLogger(tmp_path, "conv-1")
        transcript.write(Turn.create(TurnRole.ASSISTANT, "q", agent_id="a1"))
        transcript.close()
        line = (tmp_path / f"transcript_conv-1_{today()}.jsonl").read_text().strip()
        assert '"agentId":"a1"' in line

    def test_corrupt_lines_skipped(self, tmp_path):
        transcript = TranscriptLogger(tmp_path, "conv-1")
        transcript.write(Turn.create(TurnRole.USER, "ok"))
        transcript.close()
        with open(tmp_path / f"transcript_conv-1_{today()}.jsonl", "a") as f:
            f.write("{broken\n\n")
        assert [t.content for t in transcript.read_log(today())] == ["ok"]

    def test_missing_day(self, tmp_path):
        assert TranscriptLogger(tmp_path, "conv-1").read_log("1999-01-01") == []


class TestSetupLogging:
    def test_level_applied(self):
        setup_logging("debug")
        assert logging.getLogger().level == logging.DEBUG
        assert logging.getLogger("litellm").level == logging.WARNING
        setup_logging("WARNING")

    def test_unknown_level_falls_back(self):
        setup_logging("chatty")
        assert logging.getLogger().level == logging.WARNING
