"""FastAPI main application."""

from typing import Any, Dict, List, Optional

import numpy as np
import structlog
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from .. import __version__
from ..config import settings
from ..core.distance_field import SENTINEL, DistanceFieldStore, compute_distance_field
from ..core.generators import GENERATOR_TYPES
from ..core.erosion import SMOOTHER_TYPES
from ..core.pipeline import TerrainPipeline
from ..core.presets import load_presets, preset_from_dict, preset_to_dict
from ..exceptions import (
    DegenerateDistanceFieldError,
    DistanceFieldRequiredError,
    GridShapeError,
)
from ..utils.logging import configure_logging

configure_logging(settings.log_level, settings.log_format)

logger = structlog.get_logger()

# Initialize FastAPI app
app = FastAPI(
    title="Height Field Transformation API",
    description="Terrain generation and erosion around protected cells",
    version=__version__,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request/Response models
class DistanceFieldRequest(BaseModel):
    """Protection mask, True for protected cells."""

    protected: List[List[bool]] = Field(..., description="Protection mask rows (y major)")


class DistanceFieldResponse(BaseModel):
    width: int
    height: int
    max_distance: int
    distances: List[List[Optional[int]]] = Field(
        ..., description="Step distances, null where no protected cell is reachable"
    )


class TransformRequest(BaseModel):
    """Height field, optional protection mask and the preset to run."""

    heights: List[List[float]] = Field(..., description="Height rows (y major)")
    protected: Optional[List[List[bool]]] = Field(
        None, description="Protection mask, all cells free when omitted"
    )
    preset: Dict[str, Any] = Field(..., description="Preset in its JSON form")
    persist_distance_field: bool = Field(
        False, description="Cache the distance field in the configured directory"
    )


class TransformResponse(BaseModel):
    width: int
    height: int
    heights: List[List[float]]
    applied: List[str]
    skipped: List[Any]


def _to_grid(rows: List[List[Any]], dtype, label: str) -> np.ndarray:
    """Convert nested rows to a 2D array, enforcing shape and size limits."""
    if not rows or not rows[0]:
        raise HTTPException(status_code=422, detail=f"{label} must not be empty")
    width = len(rows[0])
    if any(len(row) != width for row in rows):
        raise HTTPException(status_code=422, detail=f"{label} rows must all have the same length")
    if width > settings.max_grid_size or len(rows) > settings.max_grid_size:
        raise HTTPException(
            status_code=413,
            detail=f"{label} exceeds the maximum grid size of {settings.max_grid_size}",
        )
    return np.array(rows, dtype=dtype)


def _describe(cls) -> Dict[str, Any]:
    return {
        "type": cls.type_tag,
        "name": cls.name,
        "requires_distance_field": getattr(cls, "requires_distance_field", False),
        "defaults": cls.options_class().model_dump(mode="json"),
    }


# Event handlers
@app.on_event("startup")
async def startup_event():
    logger.info("Starting height field API", version=__version__)


# API endpoints
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "Height Field Transformation API",
        "version": __version__,
        "status": "running",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/algorithms")
async def list_algorithms():
    """List every generator and smoother with its default parameters."""
    return {
        "generators": [_describe(cls) for cls in GENERATOR_TYPES.values()],
        "smoothers": [_describe(cls) for cls in SMOOTHER_TYPES.values()],
    }


@app.get("/presets")
async def list_presets():
    """List the presets stored in the preset directory."""
    return {"presets": [preset_to_dict(p) for p in load_presets(settings.preset_dir)]}


@app.post("/distance-field", response_model=DistanceFieldResponse)
def distance_field(request: DistanceFieldRequest):
    """Compute the distance-to-protected field for a mask."""
    protected = _to_grid(request.protected, bool, "protected")
    height, width = protected.shape

    field = compute_distance_field(width, height, ~protected)

    distances = field.values.astype(object)
    distances[field.values == SENTINEL] = None

    return DistanceFieldResponse(
        width=width,
        height=height,
        max_distance=field.max_finite,
        distances=distances.tolist(),
    )


@app.post("/transform", response_model=TransformResponse)
def transform(request: TransformRequest):
    """Run a preset over a height field and return the result."""
    heights = _to_grid(request.heights, np.float64, "heights")
    height, width = heights.shape

    if request.protected is not None:
        protected = _to_grid(request.protected, bool, "protected")
        if protected.shape != heights.shape:
            raise HTTPException(
                status_code=422,
                detail=f"protected has shape {protected.shape}, heights has {heights.shape}",
            )
    else:
        protected = np.zeros_like(heights, dtype=bool)

    skipped: List[Any] = []
    preset = preset_from_dict(request.preset, skipped=skipped)
    logger.info(
        "Transform requested",
        preset=preset.name,
        width=width,
        height=height,
        skipped=len(skipped),
    )

    store = DistanceFieldStore(settings.distance_field_dir) if request.persist_distance_field else None
    pipeline = TerrainPipeline(width, height, ~protected, store=store)
    try:
        applied = pipeline.run(heights, preset)
    except (DistanceFieldRequiredError, DegenerateDistanceFieldError) as e:
        logger.warning("Transform rejected", preset=preset.name, error=str(e))
        raise HTTPException(status_code=400, detail=str(e))
    except GridShapeError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return TransformResponse(
        width=width,
        height=height,
        heights=heights.tolist(),
        applied=applied,
        skipped=skipped,
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
