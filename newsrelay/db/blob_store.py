from __future__ import annotations

import os
import tempfile
from pathlib import Path

from newsrelay.models.errors import BlobNotFound

# artifact extension per producing stage; everything else is html
ARTIFACT_EXTENSIONS = {"illustrator": "png"}


class BlobStore:
    """Stage artifacts on disk: <root>/<stage>_<item_id>.<ext>."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, item_id: str, stage: str) -> Path:
        ext = ARTIFACT_EXTENSIONS.get(stage, "html")
        return self.root / f"{stage}_{item_id}.{ext}"

    def exists(self, item_id: str, stage: str) -> bool:
        return self.path_for(item_id, stage).exists()

    def get(self, item_id: str, stage: str) -> bytes:
        path = self.path_for(item_id, stage)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise BlobNotFound(item_id, stage) from None

    def get_text(self, item_id: str, stage: str) -> str:
        return self.get(item_id, stage).decode("utf-8", errors="replace")

    def put(self, item_id: str, stage: str, data: bytes | str) -> Path:
        if isinstance(data, str):
            data = data.encode("utf-8")
        path = self.path_for(item_id, stage)

        # write-then-rename so a reader never sees a half-written artifact
        fd, tmp = tempfile.mkstemp(dir=self.root, prefix=f".{stage}_", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise
        return path
