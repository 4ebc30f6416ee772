"""Hosts file writer."""
import logging
from pathlib import Path
from typing import Union

from .errors import PersistenceFailed
from ..utils.logging_config import timed_section_sync

logger = logging.getLogger(__name__)


def write_hosts_file(path: Union[str, Path], text: str) -> Path:
    """Truncate and rewrite the hosts file.

    Raises:
        PersistenceFailed: If the file cannot be written
    """
    path = Path(path)
    with timed_section_sync("write_hosts", path=path):
        try:
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise PersistenceFailed(f"Cannot write hosts file {path}: {e}") from e

    hosts = sum(1 for line in text.splitlines() if line and not line.startswith("#"))
    logger.info(f"Wrote {hosts} hosts to {path}")
    return path
