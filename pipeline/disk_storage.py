from pathlib import Path

from django.conf import settings

from .errors import NotFoundError


class FileSystemBlobStorage:
    """Blob storage under MEDIA_ROOT for single-host deployments.

    Content types are not persisted; the web tier serves by extension.
    """

    def __init__(self, root=None, base_url: str | None = None):
        self.root = Path(root or settings.MEDIA_ROOT).resolve()
        if base_url is None:
            base_url = f"{settings.PUBLIC_BASE_URL.rstrip('/')}{settings.MEDIA_URL}"
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"

    def path_for(self, key: str) -> Path:
        p = (self.root / key).resolve()
        if p != self.root and self.root not in p.parents:
            raise ValueError(f"Key escapes storage root: {key}")
        return p

    def get_file(self, key: str) -> bytes:
        p = self.path_for(key)
        if not p.is_file():
            raise NotFoundError(f"File not found: {key}")
        return p.read_bytes()

    def put_file(self, key: str, data: bytes, content_type: str) -> None:
        p = self.path_for(key)
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_name(p.name + ".part")
        try:
            tmp.write_bytes(data)
            tmp.replace(p)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def generate_download_url(self, key: str) -> str:
        return f"{self.base_url}{key.lstrip('/')}"
