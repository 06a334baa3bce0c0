from fastapi import APIRouter, Request

router = APIRouter()


def mask_secret(value: str) -> str:
    if not value:
        return value
    return value[:4] + "****" + value[-4:] if len(value) > 8 else "****"


@router.get("/")
async def get_settings(request: Request):
    """Current settings (read-only; they are fixed at startup), API keys masked."""
    config = request.app.state.config_manager.config
    data = config.model_dump()
    for key, value in data["api_keys"].items():
        data["api_keys"][key] = mask_secret(value)
    return data
