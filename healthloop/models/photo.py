"""Visual check photo models"""
import base64
from typing import Optional
from urllib.parse import unquote

from healthloop.models.records import SyncedRecord

DATA_URL_PREFIX = "data:image/jpeg;base64,"


class VisualPhoto(SyncedRecord):
    """A progress photo (skin, posture, ...) stored inline or by URL"""
    image_url: str
    category: str
    note: Optional[str] = None
    ai_note: Optional[str] = None

    @classmethod
    def from_image_bytes(
        cls,
        image_bytes: bytes,
        category: str,
        note: Optional[str] = None,
    ) -> "VisualPhoto":
        """Build a photo whose image travels inline as a JPEG data URL"""
        encoded = base64.b64encode(image_bytes).decode("ascii")
        return cls(image_url=f"{DATA_URL_PREFIX}{encoded}", category=category, note=note)

    def image_bytes(self) -> Optional[bytes]:
        """Decode inline image data; None for remote URLs or corrupt data

        Percent-encoded payloads written by older clients are accepted too.
        """
        if not self.image_url.startswith("data:image"):
            return None
        _, _, payload = self.image_url.partition(",")
        try:
            return base64.b64decode(unquote(payload), validate=True)
        except ValueError:
            return None
