import os

class Settings:
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-image-preview")  # image editing + generation model
    # Demo mode: every address resolves to the same sample satellite image
    SAMPLE_MAP_IMAGE_URL: str = os.getenv("SAMPLE_MAP_IMAGE_URL", "https://i.imgur.com/8o55t3B.jpeg")
    MAP_FETCH_TIMEOUT: int = int(os.getenv("MAP_FETCH_TIMEOUT", "30"))  # seconds
    CANVAS_WIDTH: int = 1024
    CANVAS_HEIGHT: int = 768
    MIN_POLYGON_POINTS: int = 3
    MAX_SESSIONS: int = int(os.getenv("MAX_SESSIONS", "1000"))  # oldest idle sessions are evicted past this
    POLYGON_STROKE_COLOR: tuple = (239, 68, 68, 230)  # red-500 @ 0.9
    POLYGON_FILL_COLOR: tuple = (239, 68, 68, 77)  # red-500 @ 0.3
    POLYGON_LINE_WIDTH: int = 4
    PLACEHOLDER_COLOR: tuple = (55, 65, 81)  # gray-700
    JPEG_QUALITY: int = 92
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

settings = Settings()
