import io
import json
import logging
import os
import re
import sys
from datetime import datetime
from typing import Optional, TextIO, Tuple


# Force a UTF-8 text stream for logging to avoid 'charmap' errors on Windows consoles
def _utf8_stream_for_stdout() -> TextIO:
    try:
        if hasattr(sys.stdout, "buffer"):
            return io.TextIOWrapper(sys.stdout.buffer, encoding="utf-8", errors="replace")
    except Exception:
        pass
    try:
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
            return sys.stdout
    except Exception:
        pass
    return sys.stdout


def configure_logging(level: Optional[str] = None):
    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format="%(message)s",
        handlers=[logging.StreamHandler(_utf8_stream_for_stdout())],
        force=True,  # override any existing handlers (e.g., added by uvicorn)
    )


def json_log(event: str, level: int = logging.INFO, **kwargs):
    """
    Emit an ASCII-only JSON log line so consoles with legacy codepages don't crash
    when URLs or file names contain non-ASCII characters.
    """
    payload = {"ts": datetime.utcnow().isoformat() + "Z", "event": event, **kwargs}
    line = json.dumps(payload, ensure_ascii=True, default=str)
    try:
        logging.log(level, line)
    except Exception:
        try:
            logging.log(level, line.encode("ascii", "ignore").decode("ascii"))
        except Exception:
            pass


def split_command(text: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Split '/addadmin@my_bot 555 extra' into ('addadmin', '555').

    - Returns (None, None) when the text is not a command
    - The bot username suffix after '@' is dropped
    - Only the first whitespace-delimited token after the command is kept
    """
    if not text:
        return None, None
    s = text.strip()
    if not s.startswith("/"):
        return None, None
    parts = s.split()
    name = parts[0][1:].split("@", 1)[0].lower()
    if not name:
        return None, None
    arg = parts[1] if len(parts) > 1 else None
    return name, arg


def is_numeric_id(value: Optional[str]) -> bool:
    """
    True for user ids like '555' or '-100123'. Empty strings and None are rejected.
    """
    if not value:
        return False
    # ASCII digits only; str.isdigit() would also accept "²" or "①"
    return re.fullmatch(r"-?[0-9]+", value.strip()) is not None
