"""
Simulation sessions: the SEARCH -> DRAWING -> GENERATING -> RESULTS/ERROR
flow and the roof outline the user draws on the map.
"""

import logging
import uuid
from collections import OrderedDict
from typing import Awaitable, Callable, List, Optional

from PIL import Image

from config import settings
from models.schemas import GenerationResult, Point, SessionResponse, ViewState
from utils.image_utils import draw_polygon_overlay, is_collinear, rasterize_canvas

logger = logging.getLogger(__name__)

UNKNOWN_ERROR = "An unknown error occurred."


class InvalidTransitionError(Exception):
    pass


class InvalidPolygonError(Exception):
    pass


class SessionNotFoundError(KeyError):
    pass


class Session:
    def __init__(self, session_id: str, map_image_url: str = ""):
        self.id = session_id
        self.sample_map_image_url = map_image_url or settings.SAMPLE_MAP_IMAGE_URL
        self.state = ViewState.SEARCH
        self.address = ""
        self.map_image_url = ""
        self.points: List[Point] = []
        self.is_drawing = False
        self.edited_map_image: Optional[str] = None
        self.three_d_image: Optional[str] = None
        self.error: Optional[str] = None
        self.generation = 0  # bumped per request so late results from an earlier one are dropped

    def _require(self, *states: ViewState):
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise InvalidTransitionError(f"Session is {self.state.value}, expected {allowed}")

    def start(self, address: str) -> bool:
        """Begin a simulation for an address. Blank addresses are ignored."""
        self._require(ViewState.SEARCH)
        if not address or not address.strip():
            return False
        self.address = address
        self.map_image_url = self.sample_map_image_url
        self.state = ViewState.DRAWING
        return True

    def add_point(self, point: Point) -> bool:
        """Add a vertex. The first click after a finished outline starts a new one."""
        if self.state != ViewState.DRAWING:
            return False
        if not self.is_drawing:
            self.is_drawing = True
            self.points = []
        self.points.append(point)
        return True

    def reset_drawing(self):
        self._require(ViewState.DRAWING)
        self.points = []
        self.is_drawing = False

    def finish_drawing(self, map_image: Image.Image) -> Optional[str]:
        """
        Close the outline and capture the canvas as a JPEG data URL.

        Returns None when there aren't enough vertices yet.
        """
        self._require(ViewState.DRAWING)
        if not self.is_drawing or len(self.points) < settings.MIN_POLYGON_POINTS:
            return None
        if is_collinear(self.points):
            raise InvalidPolygonError("Outline has no area; all points lie on one line")
        self.is_drawing = False
        return rasterize_canvas(map_image, self.points)

    def render_canvas(self, map_image: Image.Image) -> Image.Image:
        return draw_polygon_overlay(map_image, self.points, closed=not self.is_drawing)

    def begin_generation(self) -> int:
        self._require(ViewState.DRAWING)
        self.generation += 1
        self.error = None
        self.edited_map_image = None
        self.three_d_image = None
        self.state = ViewState.GENERATING
        return self.generation

    def complete(self, result: GenerationResult):
        self._require(ViewState.GENERATING)
        self.edited_map_image = result.rooftop_view
        self.three_d_image = result.three_d_view
        self.state = ViewState.RESULTS

    def fail(self, message: Optional[str]):
        self._require(ViewState.GENERATING)
        self.error = message or UNKNOWN_ERROR
        self.state = ViewState.ERROR

    def reset(self):
        self.address = ""
        self.map_image_url = ""
        self.points = []
        self.is_drawing = False
        self.edited_map_image = None
        self.three_d_image = None
        self.error = None
        self.state = ViewState.SEARCH

    def to_response(self) -> SessionResponse:
        return SessionResponse(
            id=self.id,
            state=self.state,
            address=self.address,
            map_image_url=self.map_image_url,
            points=list(self.points),
            is_drawing=self.is_drawing,
            edited_map_image=self.edited_map_image,
            three_d_image=self.three_d_image,
            error=self.error,
        )


class SessionStore:
    """In-memory session registry. Past max_sessions the least recently used session is evicted."""

    def __init__(self, max_sessions: int = None):
        self.max_sessions = max_sessions or settings.MAX_SESSIONS
        self._sessions: "OrderedDict[str, Session]" = OrderedDict()

    def create(self, map_image_url: str = "") -> Session:
        session = Session(uuid.uuid4().hex, map_image_url)
        self._sessions[session.id] = session
        while len(self._sessions) > self.max_sessions:
            evicted_id, _ = self._sessions.popitem(last=False)
            logger.info("Evicted idle session %s", evicted_id)
        return session

    def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        self._sessions.move_to_end(session_id)
        return session

    def delete(self, session_id: str):
        if self._sessions.pop(session_id, None) is None:
            raise SessionNotFoundError(session_id)

    def __len__(self):
        return len(self._sessions)


async def run_generation(
    session: Session,
    image_data_url: str,
    generate: Callable[[str], Awaitable[GenerationResult]],
):
    """Submit the captured canvas and record the outcome on the session."""
    generation = session.begin_generation()
    await collect_generation(session, image_data_url, generate, generation)


async def collect_generation(
    session: Session,
    image_data_url: str,
    generate: Callable[[str], Awaitable[GenerationResult]],
    generation: Optional[int] = None,
):
    """
    Await the model for a session already in GENERATING and record the outcome.

    The outcome only lands if the session is still on the same generation
    request; anything older is discarded. Failures end in the ERROR state with
    the exception message; nothing is re-raised.
    """
    if generation is None:
        generation = session.generation
    logger.info("🔄 Generating solar images for session %s (request %d)", session.id, generation)
    try:
        result = await generate(image_data_url)
    except Exception as e:
        logger.exception("❌ Generation failed for session %s", session.id)
        if _is_current(session, generation):
            session.fail(str(e))
        return

    if not _is_current(session, generation):
        logger.info("Session %s moved on before request %d finished; discarding result", session.id, generation)
        return
    session.complete(result)
    logger.info("✓ Generation finished for session %s", session.id)


def _is_current(session: Session, generation: int) -> bool:
    return session.state == ViewState.GENERATING and session.generation == generation
