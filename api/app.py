from __future__ import annotations
from fastapi import FastAPI, HTTPException, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
from datetime import datetime, timezone
import logging, os, typing as t

# ---- Engine imports ----
from schema_core import config
from schema_core.engine import ScoringContext, assess, load_context
from schema_core.errors import NoItemsNormalized, ValidationError
from schema_core.export import rankings_to_csv
from schema_core.fallback import POLICIES
from schema_core.mode_config import ModeScoringConfig
from schema_core.mode_scorer import score
from schema_core.normalizer import NormalizationConfig
from schema_core.registry import CANONICAL_SCHEMA_IDS, GATES
from schema_core.types import Instrument, RawItemResponse

log = logging.getLogger(__name__)

ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

# ---- Schemas ----
class ModeScoreReq(BaseModel):
    z: dict[str, t.Any] = {}
    gates: dict[str, t.Any] | None = None

class InstrumentIn(BaseModel):
    name: str
    version: str = ""

class ItemIn(BaseModel):
    id: str | None = None
    schema_id: str | None = None
    raw: float | None = None
    tscore: float | None = None
    percentile: float | None = None
    reverse: bool = False
    weight: float | None = None

class AssessReq(BaseModel):
    instrument: InstrumentIn
    items: list[ItemIn]
    exploratory: bool = False

# ---- Helpers ----
def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _bad_request(exc: ValidationError) -> HTTPException:
    log.info("rejected request: %s", exc)
    return HTTPException(400, detail=exc.to_dict())


def _run_assessment(ctx: ScoringContext, req: AssessReq):
    items = [RawItemResponse.from_dict(it.model_dump(), idx) for idx, it in enumerate(req.items)]
    policy = POLICIES["exploratory"] if req.exploratory else None
    try:
        return assess(
            items,
            Instrument(req.instrument.name, req.instrument.version),
            ctx.normalization,
            thresholds=ctx.thresholds,
            fallback=policy,
        )
    except NoItemsNormalized as exc:
        raise _bad_request(exc)


def create_app(
    mode_config: ModeScoringConfig | None = None,
    norm_config: NormalizationConfig | None = None,
) -> FastAPI:
    """Build the app around configs loaded once; table errors propagate."""
    if mode_config is None or norm_config is None:
        loaded = load_context()
        mode_config = mode_config or loaded.modes
        norm_config = norm_config or loaded.normalization
    ctx = ScoringContext(normalization=norm_config, modes=mode_config)

    app = FastAPI(title="Schema Analyzer API")
    app.state.ctx = ctx
    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=False,
    )

    @app.get("/")
    def root():
        return {"status": "ok", "service": "schema-analyzer-api"}

    # ---- Health ----
    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "analysis_version": config.ANALYSIS_VERSION,
            "modes": len(ctx.modes.mode_ids),
            "schemas": len(ctx.modes.known_clinical_ids or CANONICAL_SCHEMA_IDS),
            "instruments": len(ctx.normalization.conversion_tables),
        }

    # ---- Mode scorer ----
    @app.get("/mode-scorer")
    def mode_scorer_info():
        known = sorted(ctx.modes.known_clinical_ids or CANONICAL_SCHEMA_IDS)
        return {
            "schemas": [{"clinical_id": cid, "display_name": ctx.modes.display_names.get(cid, cid)} for cid in known],
            "modes": list(ctx.modes.mode_ids),
            "gates": list(GATES),
            "tau": ctx.modes.tau,
            "coping_tau": ctx.modes.coping_tau,
        }

    @app.post("/mode-scorer")
    def mode_scorer(req: ModeScoreReq):
        if not req.z:
            raise HTTPException(400, detail={"code": "validation_error", "message": "z must be a non-empty object of schema z-scores"})
        try:
            out = score(req.z, req.gates, ctx.modes)
        except ValidationError as exc:
            raise _bad_request(exc)
        return {"success": True, "result": out.to_dict(), "timestamp": _now_iso()}

    # ---- Assessments ----
    @app.post("/assessments/score")
    def score_assessment(req: AssessReq):
        report = _run_assessment(ctx, req)
        body = report.to_dict()
        body["success"] = True
        body["timestamp"] = _now_iso()
        return body

    @app.post("/assessments/rankings.csv")
    def rankings_csv(req: AssessReq):
        report = _run_assessment(ctx, req)
        return Response(content=rankings_to_csv(report.rankings), media_type="text/csv")

    log.info("app ready: %d modes, %d instrument tables", len(ctx.modes.mode_ids), len(ctx.normalization.conversion_tables))
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.DEBUG if config.DEBUG_TRACE else logging.INFO, format="[%(levelname)s] %(message)s")
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))
