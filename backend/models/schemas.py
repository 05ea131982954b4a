from enum import Enum
from pydantic import BaseModel
from typing import List, Optional

class Point(BaseModel):
    x: float  # canvas pixels
    y: float  # canvas pixels

class ViewState(str, Enum):
    SEARCH = "SEARCH"
    DRAWING = "DRAWING"
    GENERATING = "GENERATING"
    RESULTS = "RESULTS"
    ERROR = "ERROR"

class GenerationResult(BaseModel):
    rooftop_view: str  # data URL
    three_d_view: str  # data URL

class StartRequest(BaseModel):
    address: str

class CanvasClick(BaseModel):
    x: float
    y: float
    display_width: Optional[float] = None  # size of the element the user clicked on, if scaled
    display_height: Optional[float] = None

class GenerateRequest(BaseModel):
    image_data_url: str

class SessionResponse(BaseModel):
    id: str
    state: ViewState
    address: str
    map_image_url: str
    points: List[Point]
    is_drawing: bool
    edited_map_image: Optional[str] = None
    three_d_image: Optional[str] = None
    error: Optional[str] = None
