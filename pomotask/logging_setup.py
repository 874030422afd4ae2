import logging
import sys


class _ThirdPartyFilter(logging.Filter):
    """Keep our own logs; let other libraries through only at WARNING and up."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name.startswith("pomotask") or record.name.startswith("uvicorn"):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger with a single stderr handler.
    Safe to call again; only the handler installed here is replaced.
    """
    root = logging.getLogger()
    root.setLevel(level)

    for h in list(root.handlers):
        if getattr(h, "_pomotask", False):
            root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    handler.addFilter(_ThirdPartyFilter())
    handler._pomotask = True
    root.addHandler(handler)

    logging.captureWarnings(True)
