"""Signed capability URLs for stored files."""
import logging
from typing import Optional
from urllib.parse import urlencode

from pydantic import BaseModel, ConfigDict, Field

from stagebox.auth.tokens import TokenCodec

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


class SignedUrls(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    audio_url:    str = Field(..., serialization_alias="audioUrl")
    waveform_url: str = Field(..., serialization_alias="waveformUrl")


class SignedURLIssuer:
    """Mint capability links for one stored file.

    Both links carry the same ``file`` token; they differ only in the
    last path segment, which tells the gateway whether to serve the
    original or its waveform.

    Args:
        codec: Token codec used to sign the capability.
        default_ttl_days: Lifetime used when ``issue`` is not given one.
    """

    def __init__(self, codec: TokenCodec, default_ttl_days: int = 100) -> None:
        self.codec = codec
        self.default_ttl_days = default_ttl_days

    def issue(self, storage_key: str, base_url: str, ttl_days: Optional[int] = None) -> SignedUrls:
        """Sign *storage_key* and build both links under *base_url*.

        Args:
            storage_key: Key of the original file (never the ``.dat`` sibling).
            base_url: Media collection URL, e.g. ``https://host/api/project/7/media``.
            ttl_days: Link lifetime in days.
        """
        days = self.default_ttl_days if ttl_days is None else ttl_days
        token = self.codec.sign_file(storage_key, days * SECONDS_PER_DAY)
        query = urlencode({"token": token})
        base = base_url.rstrip("/")
        logger.info("Issued %d-day links for %s", days, storage_key)
        return SignedUrls(
            audio_url=f"{base}/audio?{query}",
            waveform_url=f"{base}/waveform?{query}",
        )
