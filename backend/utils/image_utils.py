import base64
import io
from typing import List, Sequence, Tuple
from PIL import Image, ImageDraw, ImageFont
import numpy as np
from config import settings
from models.schemas import Point

def decode_base64_image(base64_str: str) -> Image.Image:
    """Decode base64 string to PIL Image"""
    if ',' in base64_str:
        base64_str = base64_str.split(',')[-1]
    image_data = base64.b64decode(base64_str)
    return Image.open(io.BytesIO(image_data))

def encode_image_to_base64(image: Image.Image, format: str = 'PNG') -> str:
    """Encode PIL Image to base64 string"""
    buffer = io.BytesIO()
    if format.upper() == 'JPEG':
        image.convert('RGB').save(buffer, format='JPEG', quality=settings.JPEG_QUALITY)
    else:
        image.save(buffer, format=format)
    img_bytes = buffer.getvalue()
    return base64.b64encode(img_bytes).decode('utf-8')

def parse_data_url(data_url: str) -> Tuple[str, str]:
    """
    Split a data URL into its mime type and base64 payload.

    "data:image/jpeg;base64,/9j/4AAQ..." -> ("image/jpeg", "/9j/4AAQ...")
    """
    if not data_url or not data_url.startswith('data:') or ',' not in data_url:
        raise ValueError("Expected a data URL of the form data:<mime>;base64,<data>")
    header, data = data_url.split(',', 1)
    mime_type = header[len('data:'):].split(';')[0]
    if not mime_type or not data:
        raise ValueError("Data URL is missing its mime type or payload")
    return mime_type, data

def to_data_url(image: Image.Image, format: str = 'PNG') -> str:
    """Encode PIL Image as a self-describing data URL"""
    mime_type = f"image/{format.lower()}"
    return f"data:{mime_type};base64,{encode_image_to_base64(image, format)}"

def fit_to_canvas(image: Image.Image, width: int = None, height: int = None) -> Image.Image:
    """Stretch image to fill the whole canvas. Aspect ratio is not preserved."""
    width = width or settings.CANVAS_WIDTH
    height = height or settings.CANVAS_HEIGHT
    image = image.convert('RGB')
    if image.size == (width, height):
        return image
    return image.resize((width, height), Image.Resampling.LANCZOS)

def to_canvas_point(
    x: float,
    y: float,
    display_width: float,
    display_height: float,
    canvas_width: int = None,
    canvas_height: int = None,
) -> Point:
    """
    Translate a click on the displayed (possibly scaled) canvas element into
    canvas pixel coordinates.
    """
    canvas_width = canvas_width or settings.CANVAS_WIDTH
    canvas_height = canvas_height or settings.CANVAS_HEIGHT
    if not display_width or not display_height or display_width <= 0 or display_height <= 0:
        raise ValueError("Display size must be positive")
    return Point(
        x=x * (canvas_width / display_width),
        y=y * (canvas_height / display_height),
    )

def is_collinear(points: Sequence[Point]) -> bool:
    """True when every point lies on one line (or all coincide), so the outline encloses nothing"""
    if len(points) < 3:
        return True
    coords = np.array([(p.x, p.y) for p in points], dtype=np.float64)
    return int(np.linalg.matrix_rank(coords[1:] - coords[0])) < 2

def draw_polygon_overlay(image: Image.Image, points: List[Point], closed: bool = True) -> Image.Image:
    """
    Draw the roof outline over the map image.

    An open path (user still clicking) is only stroked. A closed path is
    filled with translucent red and then stroked on top.

    Args:
        image: Base map image
        points: Vertices in canvas pixel space, in click order
        closed: Close the path back to the first vertex and fill it

    Returns:
        New RGB image with the polygon composited on top
    """
    base = image.convert('RGBA')
    if not points:
        return base.convert('RGB')

    xy = [(p.x, p.y) for p in points]
    width = settings.POLYGON_LINE_WIDTH
    stroke = settings.POLYGON_STROKE_COLOR

    if closed and len(xy) >= 3:
        # Fill and stroke are separate layers so the stroke blends over the fill
        fill_layer = Image.new('RGBA', base.size, (0, 0, 0, 0))
        ImageDraw.Draw(fill_layer).polygon(xy, fill=settings.POLYGON_FILL_COLOR)
        base = Image.alpha_composite(base, fill_layer)
        path = xy + [xy[0]]
    else:
        path = xy

    overlay = Image.new('RGBA', base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    if len(path) > 1:
        draw.line(path, fill=stroke, width=width, joint='curve')

    # Round caps / single vertex dot
    radius = width / 2
    if len(xy) == 1:
        ends = xy
    elif not closed:
        ends = [xy[0], xy[-1]]
    else:
        ends = []
    for cx, cy in ends:
        draw.ellipse((cx - radius, cy - radius, cx + radius, cy + radius), fill=stroke)

    return Image.alpha_composite(base, overlay).convert('RGB')

def rasterize_canvas(image: Image.Image, points: List[Point]) -> str:
    """Render the closed polygon onto the map and encode it as a JPEG data URL"""
    return to_data_url(draw_polygon_overlay(image, points, closed=True), 'JPEG')

def _load_font(size: int):
    try:
        return ImageFont.truetype("/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf", size)
    except (OSError, IOError):
        return ImageFont.load_default()

def render_placeholder(width: int = None, height: int = None, message: str = "Unable to load image.") -> Image.Image:
    """Gray canvas with a centered message, shown when the map image can't be loaded"""
    width = width or settings.CANVAS_WIDTH
    height = height or settings.CANVAS_HEIGHT
    image = Image.new('RGB', (width, height), settings.PLACEHOLDER_COLOR)
    draw = ImageDraw.Draw(image)
    font = _load_font(max(16, int(height * 0.03)))
    bbox = draw.textbbox((0, 0), message, font=font)
    text_width = bbox[2] - bbox[0]
    text_height = bbox[3] - bbox[1]
    draw.text(((width - text_width) // 2, (height - text_height) // 2), message, font=font, fill=(255, 255, 255))
    return image
