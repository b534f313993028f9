"""QR codes pointing consumers at the verify page for a batch."""

from __future__ import annotations

import base64
import io
import re
from pathlib import Path
from typing import Dict, Optional

import qrcode

from utils import verify_url


class QRService:
    def __init__(self, cache_dir: Optional[str] = None):
        self.cache_dir = Path(cache_dir) if cache_dir else None
        if self.cache_dir is not None:
            self.cache_dir.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _cache_name(batch_id: str) -> str:
        return re.sub(r"[^A-Za-z0-9_.-]", "_", batch_id) + ".png"

    def generate(self, batch_id: str, url: Optional[str] = None, cache: bool = False) -> Dict[str, str]:
        """PNG QR for the verify URL; written to the cache dir only when ``cache`` is set."""
        payload = url or verify_url(batch_id)

        qr_img = qrcode.make(payload)
        buffer = io.BytesIO()
        qr_img.save(buffer, format="PNG")
        png = buffer.getvalue()

        if cache and self.cache_dir is not None:
            (self.cache_dir / self._cache_name(batch_id)).write_bytes(png)

        return {
            "batchId": batch_id,
            "payload": payload,
            "qrImageBase64": base64.b64encode(png).decode("ascii"),
        }
