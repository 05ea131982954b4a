from google import genai
from google.genai import types
import asyncio
import base64
import logging
from config import settings
from models.schemas import GenerationResult
from utils.image_utils import parse_data_url

logger = logging.getLogger(__name__)

ROOFTOP_PROMPT = (
    "In this image, realistically replace the area inside the red polygon with solar panels. "
    "The final image should not contain the red line itself."
)

THREE_D_PROMPT = (
    "Generate a photorealistic 3D architectural rendering of the house in the image, "
    "viewed from an angled, eye-level perspective. The house should have solar panels "
    "installed on its roof. The final image should be a completely new rendering and not "
    "an edit of the original top-down view."
)


class ImageGenerationError(Exception):
    """The model answered without an image."""


class GeminiService:
    def __init__(self, client=None):
        if client is None:
            if not settings.GEMINI_API_KEY:
                raise ValueError("GEMINI_API_KEY not set in environment variables")
            client = genai.Client(api_key=settings.GEMINI_API_KEY)
        self.client = client

    async def generate_image(self, image_data_url: str, prompt: str) -> str:
        """
        Send one image + prompt to the model and return the first image it
        produces as a data URL.

        Raises ImageGenerationError if the response carries no image.
        """
        mime_type, data = parse_data_url(image_data_url)
        image_part = types.Part.from_bytes(data=base64.b64decode(data), mime_type=mime_type)

        logger.info("🔄 Requesting image from %s", settings.GEMINI_MODEL)
        response = await self.client.aio.models.generate_content(
            model=settings.GEMINI_MODEL,
            contents=[image_part, prompt],
            config=types.GenerateContentConfig(
                response_modalities=['IMAGE', 'TEXT'],
            ),
        )

        parts = []
        if response.candidates and response.candidates[0].content and response.candidates[0].content.parts:
            parts = response.candidates[0].content.parts

        for part in parts:
            if getattr(part, "inline_data", None) is not None and part.inline_data.data:
                inline = part.inline_data
                payload = inline.data
                if isinstance(payload, bytes):
                    payload = base64.b64encode(payload).decode('utf-8')
                logger.info("✓ Received %s image", inline.mime_type)
                return f"data:{inline.mime_type};base64,{payload}"

        text = "".join(part.text for part in parts if getattr(part, "text", None)).strip()
        if text:
            logger.warning("❌ Model returned text instead of an image: %s", text[:200])
            raise ImageGenerationError(f"API returned text instead of an image: {text}")
        raise ImageGenerationError("Failed to generate image. No image data received from API.")

    async def generate_solar_images(self, image_data_url: str) -> GenerationResult:
        """Produce the rooftop edit and the 3D rendering concurrently."""
        rooftop_view, three_d_view = await asyncio.gather(
            self.generate_image(image_data_url, ROOFTOP_PROMPT),
            self.generate_image(image_data_url, THREE_D_PROMPT),
        )
        return GenerationResult(rooftop_view=rooftop_view, three_d_view=three_d_view)
