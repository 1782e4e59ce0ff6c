"""Object storage for uploaded resume files.

Files land under ``settings.upload_dir/resumes/<owner_id>/`` with a random
name; the public URL mirrors that layout under ``/uploads``.
"""
import os
import uuid
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiofiles.os
import structlog

from settings import get_settings

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StoredFile:
    url: str
    path: str


class LocalFileStorage:
    def __init__(self, root: str, public_prefix: str = "/uploads"):
        self.root = Path(root)
        self.public_prefix = public_prefix.rstrip("/")

    async def upload(self, content: bytes, owner_id: int, file_name: str) -> StoredFile:
        extension = os.path.splitext(file_name)[1].lower()
        relative = f"resumes/{owner_id}/{uuid.uuid4().hex}{extension}"
        target = self.root / relative
        await aiofiles.os.makedirs(target.parent, exist_ok=True)
        async with aiofiles.open(target, "wb") as out_file:
            await out_file.write(content)
        logger.info("Stored upload", owner_id=owner_id, path=relative, size=len(content))
        return StoredFile(url=f"{self.public_prefix}/{relative}", path=relative)

    async def delete(self, path: str) -> None:
        target = (self.root / path).resolve()
        if self.root.resolve() not in target.parents:
            raise ValueError(f"Refusing to delete outside storage root: {path}")
        await aiofiles.os.remove(target)
        logger.info("Deleted stored file", path=path)


def get_storage() -> LocalFileStorage:
    return LocalFileStorage(get_settings().upload_dir)
