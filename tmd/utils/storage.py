import logging
from pathlib import Path

from tmd.config import settings

logger = logging.getLogger(__name__)


def get_upload_root() -> Path:
    """上傳檔案根目錄"""
    return Path(settings.UPLOAD_DIR)


def save_file(subdir: str, filename: str, content: bytes) -> str:
    """
    將上傳內容寫入 UPLOAD_DIR/subdir。

    Returns:
        對外可存取的 URL 路徑，例如 /uploads/attendance/xxx.jpg
    """
    target_dir = get_upload_root() / subdir
    target_dir.mkdir(parents=True, exist_ok=True)
    (target_dir / filename).write_bytes(content)
    logger.info(f"Saved upload {subdir}/{filename} ({len(content)} bytes)")
    return f"/uploads/{subdir}/{filename}"
