from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Sequence

from albumcraft.exceptions import StorageUploadError
from albumcraft.storage.object_storage import DeletionResult, ObjectStorage


@dataclass
class InMemoryObjectStorage(ObjectStorage):
    """Keeps uploaded bytes in a dict; ``fail_when`` decides which uploads fail."""

    fail_when: Callable[[str, int], bool] | None = None
    objects: dict[str, bytes] = field(default_factory=dict)
    attempts: list[str] = field(default_factory=list)

    def upload(self, payload: bytes, key: str, mime_type: str) -> str:
        self.attempts.append(key)
        if self.fail_when is not None and self.fail_when(key, self.attempts.count(key)):
            raise StorageUploadError(f"upload of '{key}' rejected")
        self.objects[key] = payload
        return self.public_url(key)

    def delete(self, keys: Sequence[str]) -> DeletionResult:
        result = DeletionResult()
        for key in keys:
            self.objects.pop(key, None)
            result.deleted.append(key)
        return result

    def public_url(self, key: str) -> str:
        return f"memory://{key}"


def fail_on_file(fragment: str) -> Callable[[str, int], bool]:
    """Reject every upload whose key contains ``fragment``."""

    return lambda key, attempt: fragment in key


def fail_first_attempts(count: int) -> Callable[[str, int], bool]:
    return lambda key, attempt: attempt <= count
