from fastapi import APIRouter

from ..config import AppConfig, get_config, update_config

router = APIRouter(prefix="/api/settings", tags=["settings"])


@router.get("")
async def get_settings():
    config = get_config()
    data = config.model_dump()
    # Never echo the secret back; the UI only needs to know one is set.
    data["storage"]["api_token"] = "********" if config.storage.api_token else ""
    return data


@router.put("")
async def update_settings(config: AppConfig):
    current = get_config()
    if config.storage.api_token == "********":
        config.storage.api_token = current.storage.api_token
    update_config(config)
    # Timings and storage backend are read when the manager starts.
    return {"status": "ok", "restartRequired": config.model_dump() != current.model_dump()}
