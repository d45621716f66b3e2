import json
import logging
import os
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class DocumentFileStore:
    """
    Keeps the uploaded bytes of every registered document on disk.

    Files are named after their content hash, with a JSON sidecar holding the
    upload details (original name, content type, title, description, creator).
    """

    def __init__(self, upload_dir: str):
        self.upload_dir = upload_dir

    def _paths(self, document_hash: str) -> Tuple[str, str]:
        base = os.path.join(self.upload_dir, document_hash)
        return base + ".bin", base + ".json"

    def save(self, document_hash: str, content: bytes, info: Dict[str, Any]) -> str:
        os.makedirs(self.upload_dir, exist_ok=True)
        file_path, info_path = self._paths(document_hash)
        with open(file_path, "wb") as f:
            f.write(content)
        with open(info_path, "w", encoding="utf-8") as f:
            json.dump(info, f)
        return file_path

    def load(self, document_hash: str) -> Optional[Tuple[bytes, Dict[str, Any]]]:
        file_path, info_path = self._paths(document_hash)
        if not os.path.exists(file_path):
            return None
        with open(file_path, "rb") as f:
            content = f.read()
        info: Dict[str, Any] = {}
        if os.path.exists(info_path):
            with open(info_path, "r", encoding="utf-8") as f:
                info = json.load(f)
        return content, info

    def info(self, document_hash: str) -> Dict[str, Any]:
        _, info_path = self._paths(document_hash)
        if not os.path.exists(info_path):
            return {}
        with open(info_path, "r", encoding="utf-8") as f:
            return json.load(f)
