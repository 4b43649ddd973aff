from typing import List
from pydantic import BaseModel
import os
from dotenv import load_dotenv

load_dotenv()

def _split_csv(raw: str) -> List[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]

class Settings(BaseModel):
    app_env: str = os.getenv("APP_ENV", "dev")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    cors_origins: List[str] = _split_csv(os.getenv("CORS_ORIGINS", "http://localhost:3000"))

    # market simulation
    tick_interval_seconds: float = float(os.getenv("MARKET_TICK_SECONDS", "3.0"))
    history_cap: int = int(os.getenv("MARKET_HISTORY_CAP", "50"))
    history_days: int = int(os.getenv("MARKET_HISTORY_DAYS", "7"))

settings = Settings()
