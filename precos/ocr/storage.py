"""Local image storage for uploaded shelf and flyer photos."""

from __future__ import annotations

import mimetypes
from pathlib import Path


class StorageError(Exception):
    """An image could not be stored or read back."""


class ImageStorage:
    """Stores batch images under ``<root>/<batch_id>/<filename>``.

    Paths handed out and accepted by this class are relative to the root,
    e.g. ``"3f2a.../folheto.jpg"``.
    """

    def __init__(self, root: str | Path = "~/.config/precos/ocr-images") -> None:
        self._root = Path(root).expanduser()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        root = self._root.resolve()
        full = (root / path).resolve()
        if full != root and root not in full.parents:
            raise StorageError(f"Caminho fora do armazenamento: {path}")
        return full

    def upload(self, batch_id: str, filename: str, data: bytes) -> str:
        """Store *data* for a batch and return its storage path."""
        name = Path(filename).name
        if not name:
            raise StorageError(f"Nome de arquivo inválido: {filename!r}")
        path = f"{batch_id}/{name}"
        full = self._resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_bytes(data)
        return path

    def download(self, path: str) -> bytes:
        """Read an image back by its storage path.

        Raises:
            StorageError: If the path is invalid or the file doesn't exist.
        """
        full = self._resolve(path)
        try:
            return full.read_bytes()
        except OSError as e:
            raise StorageError(f"Erro ao baixar imagem {path}: {e.strerror or e}") from e

    @staticmethod
    def mime_type(path: str) -> str:
        return mimetypes.guess_type(path)[0] or "image/jpeg"
