"""In-memory image storage for development and testing."""

from uuid import uuid4

from ordering.errors import ExternalDependencyError
from ordering.storage.port import ImageStorage


class InMemoryImageStorage(ImageStorage):
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.unavailable: bool = False

    def configure(self, unavailable: bool = False) -> None:
        self.unavailable = unavailable

    def save(self, content: bytes, filename: str, content_type: str, folder: str = "delivery-proofs") -> str:
        if self.unavailable:
            raise ExternalDependencyError("Image storage unavailable", provider="memory")

        reference = f"memory://{folder}/{uuid4().hex}-{filename}"
        self.objects[reference] = content
        return reference

    def delete(self, reference: str) -> None:
        self.objects.pop(reference, None)
