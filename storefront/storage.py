"""Disk storage for uploaded product images.

Files land in ``Settings.upload_dir`` and are served back under
``/public/uploads`` by the static mount in ``main``.
"""
import logging
import os
import re
import shutil
import time
from contextlib import contextmanager

from fastapi import UploadFile

from . import errors

logger = logging.getLogger(__name__)

FILE_TYPE_MAP = {
    "image/png": "png",
    "image/jpeg": "jpeg",
    "image/jpg": "jpg",
}

PUBLIC_PATH = "public/uploads/"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def safe_basename(filename: str | None) -> str:
    """Reduce a client-supplied filename to a bare name that cannot leave the upload dir."""
    name = os.path.basename((filename or "").replace("\\", "/"))
    name = _UNSAFE_CHARS.sub("", "-".join(name.split(" ")))
    # no hidden files and no "." / ".." names
    name = name.lstrip(".")
    return name or "image"


def stored_filename(upload: UploadFile) -> str:
    extension = FILE_TYPE_MAP.get(upload.content_type or "")
    if extension is None:
        raise errors.InputError(f"invalid image type: {upload.content_type}")
    return f"{safe_basename(upload.filename)}-{int(time.time() * 1000)}.{extension}"


class ImageStorage:
    def __init__(self, upload_dir: str):
        self.upload_dir = upload_dir

    def save(self, upload: UploadFile, base_url: str) -> str:
        """Write ``upload`` to disk and return the public URL it is served from."""
        filename = stored_filename(upload)
        os.makedirs(self.upload_dir, exist_ok=True)
        with open(os.path.join(self.upload_dir, filename), "wb") as out:
            shutil.copyfileobj(upload.file, out)
        logger.info("stored upload %s", filename)
        return f"{base_url.rstrip('/')}/{PUBLIC_PATH}{filename}"

    def save_many(self, uploads: list[UploadFile], base_url: str) -> list[str]:
        # check every type before writing any file
        for upload in uploads:
            stored_filename(upload)
        return [self.save(upload, base_url) for upload in uploads]

    @contextmanager
    def discard_on_error(self, urls: list[str]):
        """Remove ``urls`` again if the block that records them raises."""
        try:
            yield
        except Exception:
            self.discard(urls)
            raise

    def discard(self, urls: list[str]) -> None:
        """Remove files previously returned by ``save`` whose record was never written."""
        for url in urls:
            filename = safe_basename(url.rsplit("/", 1)[-1])
            path = os.path.join(self.upload_dir, filename)
            if os.path.isfile(path):
                os.remove(path)
                logger.info("discarded upload %s", filename)
