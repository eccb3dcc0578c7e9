"""Image storage port: durable references for uploaded delivery proofs."""

from abc import ABC, abstractmethod

ALLOWED_CONTENT_TYPES = {"image/jpeg", "image/png", "image/webp", "image/gif"}
MAX_UPLOAD_BYTES = 10 * 1024 * 1024


class ImageStorage(ABC):
    @abstractmethod
    def save(self, content: bytes, filename: str, content_type: str, folder: str = "delivery-proofs") -> str:
        """Store an image and return an opaque, durable reference string."""
        ...

    @abstractmethod
    def delete(self, reference: str) -> None:
        """Remove a stored image. Unknown references are ignored."""
        ...
