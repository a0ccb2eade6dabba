import json
import logging
import os
import sys

_DATEFMT = "%Y-%m-%d %H:%M:%S"
_TEXT_FORMAT = "[%(asctime)s] [%(levelname)s] %(name)s %(message)s"

# Attributes passed through ``extra=`` by the sync modules.
_CONTEXT_FIELDS = ("ticket", "event", "temp_id")


class JsonFormatter(logging.Formatter):
    """Single-line JSON formatter for structured output.

    Produces one JSON object per log record with fields: ts, level, logger,
    msg.  Sync context passed through ``extra=`` (ticket, event, temp_id) is
    copied into the object when present, and exception info is included as
    an "exc" field.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for name in _CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _make_formatter(debug_format: str) -> logging.Formatter:
    if debug_format == "json":
        return JsonFormatter(datefmt=_DATEFMT)
    return logging.Formatter(_TEXT_FORMAT, datefmt=_DATEFMT)


def setup_logging(
    mode: str = "cli",
    debug: bool = False,
    log_file: str | None = None,
    debug_format: str = "text",
) -> None:
    """
    Configure logging based on execution mode.

    Args:
        mode: "mcp" for file logging (never stdout), "cli" for stderr logging.
        debug: If True, overrides LOG_LEVEL to DEBUG.
        log_file: Custom log file path (overrides LOG_FILE env var).
        debug_format: "text" (default) or "json" for structured output.

    Environment variables:
        LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR).
                   Default: WARNING for MCP mode, INFO for CLI mode.
        LOG_FILE: Custom log file path for MCP mode.
                  Default: /tmp/tract-sync.log
    """
    default_level = "WARNING" if mode == "mcp" else "INFO"
    env_level = os.getenv("LOG_LEVEL", default_level).upper()

    if debug:
        log_level = logging.DEBUG
    else:
        log_level = getattr(logging, env_level, logging.INFO)

    handlers: list[logging.Handler] = []
    if mode == "mcp":
        # stdio transport owns stdout, so MCP mode only ever logs to a file
        final_log_file = log_file or os.getenv(
            "LOG_FILE", "/tmp/tract-sync.log"
        )
        handlers.append(logging.FileHandler(final_log_file, mode="a"))
    else:
        handlers.append(logging.StreamHandler(sys.stderr))
        if log_file:
            handlers.append(logging.FileHandler(log_file, mode="a"))

    formatter = _make_formatter(debug_format)
    for handler in handlers:
        handler.setFormatter(formatter)

    logging.basicConfig(level=log_level, handlers=handlers)

    # Silence third-party libs unless DEBUG
    if log_level != logging.DEBUG:
        logging.getLogger("urllib3").setLevel(logging.WARNING)
        logging.getLogger("mcp").setLevel(logging.WARNING)


def apply_logging_config(
    level: str | None = None, log_file: str | None = None
) -> None:
    """Apply the ``logging`` section of the YAML config on top of
    ``setup_logging()``.

    *level* is ignored when LOG_LEVEL is set or the root logger is already
    at DEBUG (``--debug``).  *log_file* adds a file handler using the
    formatter already installed, unless one writes to that file already.
    """
    root = logging.getLogger()
    if level and not os.getenv("LOG_LEVEL") and root.level != logging.DEBUG:
        root.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not log_file:
        return
    path = os.path.abspath(log_file)
    if any(
        getattr(h, "baseFilename", None) == path for h in root.handlers
    ):
        return
    handler = logging.FileHandler(path, mode="a")
    current = root.handlers[0].formatter if root.handlers else None
    handler.setFormatter(
        current or logging.Formatter(_TEXT_FORMAT, datefmt=_DATEFMT)
    )
    root.addHandler(handler)
