"""Filesystem image storage rooted at ``IMAGE_STORAGE_ROOT``."""

from pathlib import Path
from urllib.parse import unquote, urlparse
from uuid import uuid4

import structlog

from ordering.errors import ExternalDependencyError
from ordering.storage.port import ImageStorage

logger = structlog.get_logger(__name__)


class LocalImageStorage(ImageStorage):
    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def save(self, content: bytes, filename: str, content_type: str, folder: str = "delivery-proofs") -> str:
        target_dir = self.root / folder
        target = target_dir / f"{uuid4().hex}-{Path(filename).name}"
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            target.write_bytes(content)
        except OSError as exc:
            logger.error("Could not store image", path=str(target), error=str(exc))
            raise ExternalDependencyError("Image storage unavailable", provider="local") from exc

        logger.info("Image stored", path=str(target), content_type=content_type, size=len(content))
        return target.as_uri()

    def delete(self, reference: str) -> None:
        target = Path(unquote(urlparse(reference).path))
        if self.root.resolve() not in target.resolve().parents:
            logger.warning("Refusing to delete image outside storage root", reference=reference)
            return
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            logger.error("Could not delete image", path=str(target), error=str(exc))
            raise ExternalDependencyError("Image storage unavailable", provider="local") from exc
        logger.info("Image deleted", path=str(target))
