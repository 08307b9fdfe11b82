from __future__ import annotations

import logging
from pathlib import Path

import pytest

from kepco_billing_export.logging_config import RedactingFilter, configure_logging, mask


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_mask() -> None:
    assert mask("0123456789") == "01****89"
    assert mask("abc") == "***"


def test_redacting_filter_rewrites_formatted_message() -> None:
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "login as %s with %s", ("me", "hunter22"), None)
    assert RedactingFilter(["hunter22", ""]).filter(record) is True
    assert record.getMessage() == "login as me with hu****22"


def test_configure_logging_writes_redacted_file(tmp_path: Path) -> None:
    log_path = tmp_path / "logs" / "run.log"
    configure_logging(level="DEBUG", file_path=str(log_path), redact=["0123456789"])

    logging.getLogger("kepco_billing_export.test").info("searching customer %s", "0123456789")

    text = log_path.read_text(encoding="utf-8")
    assert "searching customer 01****89" in text
    assert "0123456789" not in text
