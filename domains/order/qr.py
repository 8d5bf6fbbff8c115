import logging
from pathlib import Path
from typing import Dict

from starlette.concurrency import run_in_threadpool

from core.exceptions import ValidationError

logger = logging.getLogger(__name__)

QR_EXTENSIONS: Dict[str, str] = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
}
QR_URL_PREFIX = "/uploads/qr"


class QrStorage:
    """QR images on local disk, served back under /uploads/qr/"""

    def __init__(self, upload_dir: str, max_bytes: int = 1024 * 1024) -> None:
        self.directory = Path(upload_dir) / "qr"
        self.max_bytes = max_bytes

    def validate(self, content_type: str, data: bytes) -> str:
        """Return the file extension for an acceptable image, else raise."""
        media_type = content_type.split(";")[0].strip().lower()
        extension = QR_EXTENSIONS.get(media_type)
        if extension is None:
            raise ValidationError.for_field(
                "file", "Only JPG, JPEG, PNG files are allowed"
            )
        if len(data) > self.max_bytes:
            raise ValidationError.for_field(
                "file", f"File larger than {self.max_bytes} bytes"
            )
        return extension

    async def save(self, order_id: str, data: bytes, extension: str) -> str:
        filename = f"{order_id}{extension}"
        path = self.directory / filename
        await run_in_threadpool(self._write, path, data)
        logger.info(f"🖼️ [QR] Stored {filename} ({len(data)} bytes)")
        return f"{QR_URL_PREFIX}/{filename}"

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
