"""
Slim Pyramid: Level Serving API
===============================

Read-mostly HTTP surface over SlimPyramidEngine.

Endpoints:
- GET  /health
- GET  /api/v1/content/{source_hash}          -> Selected level payload
- GET  /api/v1/content/{source_hash}/levels   -> Available levels and budgets
- POST /api/v1/validate?level=<n>             -> Validation report
- GET  /api/v1/audit                          -> Audit report

Usage:
    uvicorn slim_pyramid.api.server:app --reload
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Literal, Optional

from fastapi import Body, FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import PyramidConfig
from ..contracts.base import ErrorCode
from ..contracts.levels import LevelRequest
from ..engine import SlimPyramidEngine
from ..negotiation import parse_accept_header
from ..serialization import to_wire


logger = logging.getLogger(__name__)


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class LevelInfo(BaseModel):
    level: int
    name: str
    budget: Dict[str, Optional[float]]
    ttlSeconds: int


class LevelsResponse(BaseModel):
    sourceHash: str
    availableLevels: List[int]
    levels: List[LevelInfo]


class ValidationResponse(BaseModel):
    requestedLevel: int
    conforms: bool
    highestLevel: Optional[int]
    errors: List[Dict[str, Any]]
    warnings: List[Dict[str, Any]]


# =============================================================================
# INFRASTRUCTURE SETUP
# =============================================================================

def build_engine(config: Optional[PyramidConfig] = None) -> SlimPyramidEngine:
    """Build an engine and load the configured content directory, if any."""
    config = config or PyramidConfig.from_env()
    engine = SlimPyramidEngine(config)
    if config.content_dir is not None:
        results = engine.load_directory(config.content_dir)
        loaded = sum(1 for r in results.values() if r.is_success)
        logger.info("Loaded %d of %d content items from %s", loaded, len(results), config.content_dir)
    return engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize the engine on startup unless one was injected."""
    if getattr(app.state, "engine", None) is None:
        app.state.engine = build_engine()
        logger.info("Engine initialized with protocol version %s", app.state.engine.registry.version)
    yield
    logger.info("Shutting down level serving API")
    app.state.engine = None


def create_app(engine: Optional[SlimPyramidEngine] = None) -> FastAPI:
    app = FastAPI(
        title="Slim Pyramid Level Serving API",
        version="0.1.0",
        description="Progressive-disclosure level selection and validation",
        lifespan=lifespan,
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    # =========================================================================
    # ENDPOINTS
    # =========================================================================

    def _engine(request: Request) -> SlimPyramidEngine:
        engine = getattr(request.app.state, "engine", None)
        if engine is None:
            raise HTTPException(status_code=503, detail="Engine not initialized")
        return engine

    @app.get("/health")
    async def health_check(request: Request):
        engine = _engine(request)
        return {"status": "online", "version": engine.registry.version,
                "contentItems": len(engine.content_hashes())}

    @app.get("/api/v1/content/{source_hash}")
    async def get_content(
        source_hash: str,
        request: Request,
        level: Optional[int] = Query(None, ge=0),
        max_level: Optional[int] = Query(None, ge=0),
        token_budget: Optional[int] = Query(None, ge=0),
        prefer: Optional[Literal["minimal", "balanced", "comprehensive"]] = None,
        accept: Optional[str] = Header(None),
    ):
        """
        Serve the level selected for the request.
        An explicit ``level`` query wins over the Accept header level.
        """
        engine = _engine(request)
        if level is None:
            level = parse_accept_header(accept)

        result = engine.serve(source_hash, LevelRequest(
            level=level,
            max_level=max_level,
            token_budget=token_budget,
            prefer=prefer,
        ))
        if result.is_failure:
            status = 404 if result.error.code is ErrorCode.CONTENT_NOT_FOUND else 400
            raise HTTPException(status_code=status, detail=result.error.message)

        served = result.value
        headers = dict(served.headers)
        media_type = headers.pop("Content-Type")
        headers["Cache-Control"] = f"max-age={served.ttl_seconds}"
        return JSONResponse(content=to_wire(served.payload), headers=headers, media_type=media_type)

    @app.get("/api/v1/content/{source_hash}/levels", response_model=LevelsResponse)
    async def get_levels(source_hash: str, request: Request):
        engine = _engine(request)
        available = engine.available_levels(source_hash)
        if not available:
            raise HTTPException(status_code=404, detail=f"no content published for {source_hash!r}")

        table = engine.registry.describe()
        return LevelsResponse(
            sourceHash=source_hash,
            availableLevels=list(available),
            levels=[
                LevelInfo(
                    level=l,
                    name=table[l]["name"],
                    budget=table[l]["budget"],
                    ttlSeconds=table[l]["ttlSeconds"],
                )
                for l in available
            ],
        )

    @app.post("/api/v1/validate", response_model=ValidationResponse)
    async def validate_payload(
        request: Request,
        payload: Any = Body(...),
        level: int = Query(...),
    ):
        """Validation never rejects the request; the report carries the verdict."""
        engine = _engine(request)
        return ValidationResponse(**engine.validator.validate(payload, level).to_dict())

    @app.get("/api/v1/audit")
    async def get_audit(request: Request, source_hash: Optional[str] = None):
        return _engine(request).observability.generate_audit_report(entity_id=source_hash)

    return app


app = create_app()
