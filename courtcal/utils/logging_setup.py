import logging
from pathlib import Path
from typing import Mapping

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


def _level(name) -> int:
    return getattr(logging, str(name).upper(), logging.INFO)


def setup_logging(level: str = "INFO", file_path: str | None = None, levels: Mapping[str, str] | None = None):
    """Console logging for the courtcal apps, plus an optional log file.

    ``levels`` maps logger names to their own level, e.g.
    ``{"courtcal.calibration.homography": "DEBUG"}`` to trace endpoint-flip
    resolution without turning on DEBUG everywhere. Calling again with the
    same file does not add a second handler.
    """
    lvl = _level(level)
    logging.basicConfig(level=lvl, format=LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(lvl)
    for name, name_level in (levels or {}).items():
        logging.getLogger(name).setLevel(_level(name_level))

    if not file_path:
        return
    p = Path(file_path)
    for h in root.handlers:
        if isinstance(h, logging.FileHandler) and Path(h.baseFilename).resolve() == p.resolve():
            h.setLevel(lvl)
            return
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(p, encoding="utf-8")
    except OSError as e:
        logging.getLogger(__name__).warning("Failed to add file logger at %s: %s", file_path, e)
        return
    fh.setLevel(lvl)
    fh.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(fh)
