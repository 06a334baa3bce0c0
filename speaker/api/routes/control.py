from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/state")
async def get_state(request: Request):
    """Where the conversation loop is right now."""
    state = request.app.state.shared_state
    return {
        "state": state.session_state.value,
        "running": state.is_running,
        "current_transcript": state.current_transcript,
        "turns": state.turns,
    }


@router.post("/stop")
async def stop(request: Request):
    """Stop the conversation loop; the process exits once it has unwound."""
    state = request.app.state.shared_state
    state.request_stop()
    return {"status": "stopping"}
