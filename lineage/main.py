import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import database
from .client import SleeperClient
from .config import get_settings
from .errors import (
    InvalidAssetRef,
    InvalidDepth,
    LineageError,
    RebuildFailed,
    RebuildInProgress,
    UnknownAsset,
    UnknownLeague,
    UpstreamError,
)
from .models.assets import AssetRef, NetworkResponse, RebuildResult, TimelineResponse, TradeTreeNode
from .services import rebuild
from .services.league_family import get_league_family
from .services.network import get_network
from .services.timeline import get_timeline
from .services.trade_tree import get_trade_tree

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    await database.create_tables()
    app.state.client = SleeperClient(settings)
    yield
    await app.state.client.aclose()


app = FastAPI(lifespan=lifespan)

# Configure CORS for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

ERROR_STATUS = {
    InvalidDepth: 422,
    InvalidAssetRef: 422,
    UnknownAsset: 404,
    UnknownLeague: 404,
    RebuildInProgress: 409,
    UpstreamError: 502,
}


@app.exception_handler(LineageError)
async def lineage_error_handler(request: Request, exc: LineageError):
    status_code = 500
    if isinstance(exc, RebuildFailed):
        status_code = 502 if exc.stage == "fetch" else 500
    else:
        for error_type, code in ERROR_STATUS.items():
            if isinstance(exc, error_type):
                status_code = code
                break
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    body = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, RebuildFailed):
        body["stage"] = exc.stage
    return JSONResponse(status_code=status_code, content=body)


async def get_db():
    db = await database.get_db_connection()
    try:
        yield db
    finally:
        await db.close()


def get_client(request: Request) -> Optional[SleeperClient]:
    return getattr(request.app.state, "client", None)


def asset_param(
    asset: Optional[str] = Query(None, description="player:<id> or pick:<season>-<round>-<original_roster_id>"),
    player_id: Optional[str] = None,
    pick_season: Optional[str] = None,
    pick_round: Optional[int] = None,
    original_roster_id: Optional[int] = None,
) -> AssetRef:
    if asset:
        return AssetRef.parse(asset)
    if player_id:
        return AssetRef.player(player_id)
    if pick_season and pick_round is not None and original_roster_id is not None:
        return AssetRef.pick(pick_season, pick_round, original_roster_id)
    raise InvalidAssetRef(asset, "an asset or its player/pick parameters are required")


@app.get("/")
def read_root():
    return {"service": "lineage"}


@app.post("/league/{league_id}/rebuild", response_model=RebuildResult)
async def rebuild_league(league_id: str, fetch: bool = True, db=Depends(get_db), client=Depends(get_client)):
    if fetch and client is None:
        raise HTTPException(status_code=503, detail="Sleeper client is not available")
    return await rebuild.rebuild_family(db, league_id, client=client if fetch else None)


@app.get("/league/{league_id}/family")
async def league_family(league_id: str, db=Depends(get_db)):
    return {"league_id": league_id, "family": await get_league_family(db, league_id)}


@app.get("/league/{league_id}/rebuild_state")
async def rebuild_state(league_id: str, db=Depends(get_db)):
    state = await rebuild.get_rebuild_state(db, league_id)
    if state is None:
        raise HTTPException(status_code=404, detail="League has never been rebuilt")
    state["in_progress"] = rebuild.is_rebuilding(league_id)
    return state


@app.get("/league/{league_id}/timeline", response_model=TimelineResponse)
async def asset_timeline(league_id: str, asset: AssetRef = Depends(asset_param), db=Depends(get_db)):
    return await get_timeline(db, asset, league_id)


@app.get("/league/{league_id}/trade_tree", response_model=TradeTreeNode)
async def asset_trade_tree(league_id: str, asset: AssetRef = Depends(asset_param), db=Depends(get_db)):
    return await get_trade_tree(db, asset, league_id)


@app.get("/league/{league_id}/network", response_model=NetworkResponse)
async def asset_network(league_id: str, depth: int = 2, asset: AssetRef = Depends(asset_param),
                        db=Depends(get_db)):
    return await get_network(db, asset, league_id, depth)
