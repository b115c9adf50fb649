import json
from pathlib import Path
from typing import Any


class FileSource:
    def __init__(self, base_dir: Path, *, path: str, **_: Any):
        self.path = base_dir / path

    def fetch(self) -> Any:
        if not self.path.exists():
            return None
        text = self.path.read_text(encoding="utf-8")
        if not text.strip():
            return None
        return json.loads(text)
