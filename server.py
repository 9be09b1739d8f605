import logging
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from decision_sim.backend import Backend
from decision_sim.exceptions import SimulationError
from decision_sim.google_helpers import configure_logging, cors_origins_from_env, load_settings
from decision_sim.models import CamelModel, Scenario

load_dotenv()

logger = logging.getLogger("decision_sim.server")


class TeamSetupRequest(CamelModel):
    team_size: int
    domain: str


class StartSimulationRequest(TeamSetupRequest):
    scenario: Scenario


class SimulationRef(CamelModel):
    simulation_id: str


class SubmitTurnRequest(SimulationRef):
    content: str


def create_app(backend: Optional[Backend] = None) -> FastAPI:
    """
    Builds the HTTP app. Without an explicit backend one is created from the
    environment when the app starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "backend", None) is None:
            configure_logging()
            app.state.backend = Backend(load_settings())
        yield

    app = FastAPI(title="Team Dilemma Simulator", lifespan=lifespan)
    app.state.backend = backend

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cors_origins_from_env()),  # "*" for dev
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SimulationError)
    async def simulation_error_handler(request: Request, exc: SimulationError):
        level = logging.ERROR if exc.http_status >= 500 else logging.INFO
        logger.log(level, "%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc)
        return JSONResponse(status_code=exc.http_status, content={"error": str(exc), "kind": exc.kind})

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
        )
        return JSONResponse(
            status_code=400,
            content={"error": f"Invalid request body: {problems}", "kind": "InvalidInput"},
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("%s %s failed", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"error": "Internal server error", "kind": "InternalError"})

    def get_backend() -> Backend:
        return app.state.backend

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/generate-scenarios")
    def generate_scenarios(req: TeamSetupRequest):
        return get_backend().handle_generate_scenarios(req.model_dump(by_alias=True))

    @app.post("/start-simulation")
    def start_simulation(req: StartSimulationRequest):
        return get_backend().handle_start_simulation(req.model_dump(by_alias=True))

    @app.post("/submit-turn")
    def submit_turn(req: SubmitTurnRequest):
        return get_backend().handle_submit_turn(req.model_dump(by_alias=True))

    @app.post("/finish-simulation")
    def finish_simulation(req: SimulationRef):
        return get_backend().handle_finish_simulation(req.model_dump(by_alias=True))

    @app.post("/analyze")
    def analyze(req: SimulationRef):
        return get_backend().handle_analyze(req.model_dump(by_alias=True))

    @app.get("/simulation/{simulation_id}")
    def get_simulation(simulation_id: str):
        return get_backend().handle_get_simulation(simulation_id)

    @app.get("/simulations")
    def list_simulations():
        return get_backend().handle_list_simulations()

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
