"""Screenshot file storage, one folder per job."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from errors import ResourceError

logger = logging.getLogger(__name__)


def output_extension(format: Optional[str]) -> str:
    """File extension, which depends on the format alone (e-ink output included)."""
    return format or "png"


class FileStore:
    def __init__(self, base_path: str, url_prefix: str = "/local/screenshots", keep_history: bool = False):
        self.base_path = Path(base_path)
        self.url_prefix = url_prefix.rstrip("/")
        self.keep_history = keep_history
        self.ensure_directory(self.base_path)

    def ensure_directory(self, path: Path) -> None:
        if path.is_dir():
            return
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Failed to create directory %s: %s", path, e)
            raise ResourceError(f"Cannot create directory: {path} - {e}") from e
        logger.info("Created directory: %s", path)

    def save(
        self,
        name: str,
        data: bytes,
        format: str = "png",
    ) -> Path:
        """Write ``<base>/<name>/latest.<ext>`` and return its path."""
        job_dir = self.base_path / name
        self.ensure_directory(job_dir)

        extension = output_extension(format)
        latest = job_dir / f"latest.{extension}"
        try:
            latest.write_bytes(data)
        except OSError as e:
            logger.error("Failed to write file %s: %s", latest, e)
            raise ResourceError(f"Cannot write screenshot file: {e}") from e
        logger.debug("Wrote %d bytes to %s", len(data), latest)

        if self.keep_history:
            stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
            try:
                (job_dir / f"{stamp}.{extension}").write_bytes(data)
            except OSError as e:
                logger.warning("Failed to write history file: %s", e)

        return latest

    def url_for(self, name: str, format: str = "png") -> str:
        extension = output_extension(format)
        return f"{self.url_prefix}/{name}/latest.{extension}"
