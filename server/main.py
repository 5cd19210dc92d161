from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional, Tuple

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from kaibrain import BoardState, GameMaster, get_ledger_store

logger = logging.getLogger(__name__)


class MoveReq(BaseModel):
    direction: str
    head: Tuple[int, int]
    length: int
    objective: Tuple[int, int]
    board_width: int
    board_height: int


class BoardReq(BaseModel):
    body: List[Tuple[int, int]]  # head first
    objective: Tuple[int, int]
    width: int
    height: int


class PositionReq(BaseModel):
    position: Tuple[int, int]


class PlaceReq(BaseModel):
    body: List[Tuple[int, int]]
    width: int
    height: int
    default: Tuple[int, int]


class EndReq(BaseModel):
    final_score: int
    termination_cause: Optional[str] = None
    has_won: Optional[bool] = None


def _origins() -> List[str]:
    raw = os.getenv("ALLOW_ORIGINS", "*")
    return [o.strip() for o in raw.split(",") if o.strip()] or ["*"]


def create_app(master: Optional[GameMaster] = None) -> FastAPI:
    if master is None:
        master = GameMaster(store=get_ledger_store())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if await master.load_history():
            logger.info("history loaded for %s", master.player_id)
        yield
        await master.drain()
        master.close()
        if master.store is not None:
            await master.store.close()

    app = FastAPI(title="KAI Game Master API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.master = master

    # async handlers keep every hook on the event loop thread
    @app.post("/session/start")
    async def session_start() -> Dict[str, Any]:
        return master.on_session_start().to_dict()

    @app.post("/move")
    async def move(req: MoveReq) -> Dict[str, Any]:
        rec = master.on_move(
            req.direction,
            (req.head[0], req.head[1]),
            req.length,
            (req.objective[0], req.objective[1]),
            req.board_width,
            req.board_height,
        )
        return {"accepted": rec is not None}

    @app.post("/tick")
    async def tick(req: BoardReq) -> Dict[str, Any]:
        board = BoardState.from_lists(req.body, req.objective, req.width, req.height)
        result = master.on_tick(board)
        return {
            "snapshot": result.snapshot.to_dict(),
            "commentary_events": [e.to_dict() for e in result.commentary_events],
        }

    @app.post("/objective/consumed")
    async def objective_consumed() -> Dict[str, Any]:
        master.on_objective_consumed()
        return {"ok": True}

    @app.post("/decoy/consumed")
    async def decoy_consumed(req: PositionReq) -> Dict[str, Any]:
        event = master.on_decoy_consumed((req.position[0], req.position[1]))
        return {"event": event.to_dict() if event is not None else None}

    @app.post("/objective/place")
    async def objective_place(req: PlaceReq) -> Dict[str, Any]:
        body = [(p[0], p[1]) for p in req.body]
        pos = master.place_objective(body, req.width, req.height, (req.default[0], req.default[1]))
        return {"position": list(pos)}

    @app.post("/session/end")
    async def session_end(req: EndReq) -> Dict[str, Any]:
        return master.on_session_end(req.final_score, req.termination_cause, req.has_won).to_dict()

    @app.get("/snapshot")
    async def snapshot() -> Dict[str, Any]:
        return master.current_snapshot().to_dict()

    @app.get("/decoy/visible")
    async def decoy_visible() -> Dict[str, Any]:
        return {"visible": master.decoy_visible()}

    @app.get("/healthz")
    async def healthz() -> Dict[str, Any]:
        return {"ok": True, "active": master.session_id is not None}

    return app


logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO"))
app = create_app()
