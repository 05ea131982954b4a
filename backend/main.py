from fastapi import FastAPI, HTTPException, APIRouter, BackgroundTasks, Depends
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import FileResponse, Response
from models.schemas import CanvasClick, GenerateRequest, GenerationResult, Point, SessionResponse, StartRequest
from services.gemini_service import GeminiService, ImageGenerationError
from services.map_service import MapService
from services.simulation import (
    InvalidPolygonError,
    InvalidTransitionError,
    SessionNotFoundError,
    SessionStore,
    collect_generation,
)
from utils.image_utils import to_canvas_point
from config import settings
import io
import logging
import os

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Solar Rooftop Simulator API", version="1.0.0")

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create API router with /api prefix
api_router = APIRouter(prefix="/api")

session_store = SessionStore()
map_service = MapService()
_gemini: GeminiService = None

# Get the path to the dist folder
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
DIST_DIR = os.path.join(BASE_DIR, "dist")

# Serve static files
if os.path.exists(os.path.join(DIST_DIR, "assets")):
    app.mount("/assets", StaticFiles(directory=os.path.join(DIST_DIR, "assets")), name="assets")


def get_store() -> SessionStore:
    return session_store


def get_map_service() -> MapService:
    return map_service


def get_gemini() -> GeminiService:
    """Build the Gemini client on first use so the app runs without a key until generation is requested"""
    global _gemini
    if _gemini is None:
        try:
            _gemini = GeminiService()
        except ValueError as e:
            raise HTTPException(status_code=503, detail=str(e))
    return _gemini


def _session_or_404(store: SessionStore, session_id: str):
    try:
        return store.get(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")


@api_router.get("/health")
async def health():
    return {"status": "healthy"}

@api_router.post("/sessions", response_model=SessionResponse, status_code=201)
async def create_session(
    request: StartRequest,
    store: SessionStore = Depends(get_store),
    maps: MapService = Depends(get_map_service),
):
    """Start a simulation. A blank address leaves the new session in SEARCH."""
    session = store.create(maps.resolve(request.address))
    session.start(request.address)
    logger.info("Session %s created (state=%s)", session.id, session.state.value)
    return session.to_response()

@api_router.post("/sessions/{session_id}/start", response_model=SessionResponse)
async def start_session(session_id: str, request: StartRequest, store: SessionStore = Depends(get_store)):
    """Enter an address on an existing session, e.g. after a reset. Blank addresses leave it in SEARCH."""
    session = _session_or_404(store, session_id)
    try:
        session.start(request.address)
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return session.to_response()

@api_router.get("/sessions/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str, store: SessionStore = Depends(get_store)):
    return _session_or_404(store, session_id).to_response()

@api_router.get("/sessions/{session_id}/canvas")
def get_canvas(
    session_id: str,
    store: SessionStore = Depends(get_store),
    maps: MapService = Depends(get_map_service),
):
    """PNG of the map with the current outline drawn on it"""
    session = _session_or_404(store, session_id)
    if not session.map_image_url:
        raise HTTPException(status_code=409, detail="No map loaded; start a simulation first")
    image = session.render_canvas(maps.load(session.map_image_url))
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return Response(content=buffer.getvalue(), media_type="image/png")

@api_router.post("/sessions/{session_id}/points", response_model=SessionResponse)
async def add_point(session_id: str, click: CanvasClick, store: SessionStore = Depends(get_store)):
    session = _session_or_404(store, session_id)
    if click.display_width is not None or click.display_height is not None:
        try:
            point = to_canvas_point(click.x, click.y, click.display_width, click.display_height)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    else:
        point = Point(x=click.x, y=click.y)
    session.add_point(point)
    return session.to_response()

@api_router.post("/sessions/{session_id}/drawing/reset", response_model=SessionResponse)
async def reset_drawing(session_id: str, store: SessionStore = Depends(get_store)):
    session = _session_or_404(store, session_id)
    try:
        session.reset_drawing()
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return session.to_response()

@api_router.post("/sessions/{session_id}/drawing/finish", response_model=SessionResponse, status_code=202)
def finish_drawing(
    session_id: str,
    background_tasks: BackgroundTasks,
    store: SessionStore = Depends(get_store),
    maps: MapService = Depends(get_map_service),
    gemini: GeminiService = Depends(get_gemini),
):
    """
    Close the outline, capture the canvas and start generating.

    Generation runs in the background; poll the session until it leaves GENERATING.
    """
    session = _session_or_404(store, session_id)
    if not session.map_image_url:
        raise HTTPException(status_code=409, detail="No map loaded; start a simulation first")
    try:
        image_data_url = session.finish_drawing(maps.load(session.map_image_url))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except InvalidPolygonError as e:
        raise HTTPException(status_code=422, detail=str(e))
    if image_data_url is None:
        raise HTTPException(
            status_code=400,
            detail=f"At least {settings.MIN_POLYGON_POINTS} points are needed to close the outline",
        )

    generation = session.begin_generation()
    background_tasks.add_task(collect_generation, session, image_data_url, gemini.generate_solar_images, generation)
    return session.to_response()

@api_router.post("/sessions/{session_id}/reset", response_model=SessionResponse)
async def reset_session(session_id: str, store: SessionStore = Depends(get_store)):
    session = _session_or_404(store, session_id)
    session.reset()
    return session.to_response()

@api_router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, store: SessionStore = Depends(get_store)):
    try:
        store.delete(session_id)
    except SessionNotFoundError:
        raise HTTPException(status_code=404, detail="Session not found")
    return Response(status_code=204)

@api_router.post("/generate", response_model=GenerationResult)
async def generate(request: GenerateRequest, gemini: GeminiService = Depends(get_gemini)):
    """
    Stateless generation from an already annotated image.

    Input:
    - image_data_url: data URL of the map with the red roof outline drawn on it

    Output:
    - rooftop_view: map with solar panels in place of the outline
    - three_d_view: eye-level 3D rendering of the house with panels
    """
    try:
        return await gemini.generate_solar_images(request.image_data_url)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ImageGenerationError as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Exception as e:
        logger.exception("❌ Generation request failed")
        raise HTTPException(status_code=500, detail=f"Error processing request: {str(e)}")

# Include API router
app.include_router(api_router)

# Serve frontend - must be last
@app.get("/{full_path:path}")
async def serve_frontend(full_path: str):
    """Serve frontend for all routes except API endpoints"""
    if full_path.startswith(("api", "docs", "openapi.json")):
        raise HTTPException(status_code=404, detail="Not found")

    index_path = os.path.join(DIST_DIR, "index.html")
    if os.path.exists(index_path):
        return FileResponse(index_path)
    else:
        raise HTTPException(status_code=404, detail="Frontend not found")

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
