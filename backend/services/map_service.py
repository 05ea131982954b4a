import io
import logging
from typing import Dict

import requests
from PIL import Image

from config import settings
from utils.image_utils import fit_to_canvas, render_placeholder

logger = logging.getLogger(__name__)


class MapService:
    """Loads the satellite image a roof outline is drawn on, sized to the canvas."""

    def __init__(self, timeout: int = None):
        self.timeout = timeout or settings.MAP_FETCH_TIMEOUT
        self._cache: Dict[str, Image.Image] = {}

    def resolve(self, address: str) -> str:
        """
        Map an address to a satellite image URL.

        Demo behaviour: no geocoding is done, every address gets the sample image.
        """
        return settings.SAMPLE_MAP_IMAGE_URL

    def load(self, url: str) -> Image.Image:
        """Fetch and fit the map image. Falls back to a placeholder if it can't be loaded."""
        cached = self._cache.get(url)
        if cached is not None:
            return cached.copy()

        try:
            resp = requests.get(url, timeout=self.timeout)
            resp.raise_for_status()
            image = fit_to_canvas(Image.open(io.BytesIO(resp.content)))
        except (requests.RequestException, OSError) as e:
            logger.warning("❌ Could not load map image %s: %s", url, e)
            return render_placeholder()

        logger.info("✓ Loaded map image %s", url)
        self._cache[url] = image
        return image.copy()
