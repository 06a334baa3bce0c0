from fastapi import FastAPI

from core.config import ConfigManager
from core.state import SharedState


def create_app(config_manager: ConfigManager, state: SharedState) -> FastAPI:
    """Create the local status/control API."""

    app = FastAPI(title="Conversational Speaker", version="1.0.0")

    # Store references for route handlers
    app.state.config_manager = config_manager
    app.state.shared_state = state

    from api.routes.control import router as control_router
    from api.routes.settings import router as settings_router

    app.include_router(control_router, prefix="/api/control", tags=["control"])
    app.include_router(settings_router, prefix="/api/settings", tags=["settings"])

    @app.get("/api/health")
    async def health():
        return {
            "status": "ok",
            "state": state.session_state.value,
            "backend": state.backend_kind,
            "turns": state.turns,
            "last_error": state.last_error,
        }

    return app
