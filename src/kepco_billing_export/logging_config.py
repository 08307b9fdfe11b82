import logging
import os
import sys
from pathlib import Path
from typing import Iterable, Optional


def mask(value: str) -> str:
    return f"{value[:2]}****{value[-2:]}" if len(value) >= 4 else "***"


class RedactingFilter(logging.Filter):
    """
    Rewrites log lines so configured secrets (password, customer number) never reach a handler verbatim.
    """

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        self._secrets = sorted({s for s in secrets if s}, key=len, reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        if not self._secrets:
            return True
        msg = record.getMessage()
        redacted = msg
        for secret in self._secrets:
            redacted = redacted.replace(secret, mask(secret))
        if redacted != msg:
            record.msg = redacted
            record.args = None
        return True


def configure_logging(level: str = "INFO", file_path: Optional[str] = None, *, redact: Iterable[str] = ()) -> None:
    numeric_level = getattr(logging, (level or "INFO").upper(), logging.INFO)

    # stdout carries the JSON export; logs go to stderr.
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    if file_path:
        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))

    redacting = RedactingFilter(redact)
    for handler in handlers:
        handler.addFilter(redacting)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
        handlers=handlers,
        force=True,  # main() calls this twice: before and after the config is loaded
    )

    for noisy in ("playwright", "asyncio"):
        logging.getLogger(noisy).setLevel(os.getenv("NOISY_LOG_LEVEL", "WARNING"))
