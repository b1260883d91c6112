from pydantic import BaseModel
from dotenv import load_dotenv
import os

load_dotenv()


class Settings(BaseModel):
    demo_mode: bool = os.getenv("DEMO_MODE", "true").lower() == "true"
    supabase_url: str = os.getenv("SUPABASE_URL", "")
    supabase_key: str = os.getenv("SUPABASE_KEY", "")
    auth_storage_key: str = os.getenv("AUTH_STORAGE_KEY", "swa-antarang-auth")
    data_dir: str = os.getenv("DATA_DIR", "data")
    bootstrap_timeout_seconds: float = float(os.getenv("BOOTSTRAP_TIMEOUT_SECONDS", "10"))
    signup_grace_seconds: float = float(os.getenv("SIGNUP_GRACE_SECONDS", "1.0"))
    slow_login_ms: float = float(os.getenv("SLOW_LOGIN_MS", "3000"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
