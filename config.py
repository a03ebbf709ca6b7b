import os
from functools import lru_cache


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Runtime configuration, read from environment variables."""

    def __init__(self, **overrides):
        self.database_url = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
        self.database_name = os.getenv("DATABASE_NAME", "clothing_store")
        self.database_transactions = _flag("DATABASE_TRANSACTIONS")

        self.jwt_secret = os.getenv("JWT_SECRET", "dev-secret-key-change-me")
        self.jwt_algorithm = "HS256"
        self.token_ttl_hours = int(os.getenv("TOKEN_TTL_HOURS", "168"))

        self.google_client_id = os.getenv("GOOGLE_CLIENT_ID")
        self.google_client_secret = os.getenv("GOOGLE_CLIENT_SECRET")
        self.google_callback_url = os.getenv(
            "GOOGLE_CALLBACK_URL", "http://localhost:8000/auth/google/callback"
        )

        self.upload_dir = os.getenv("UPLOAD_DIR", "frontend/images/uploads")
        self.cod_fee = int(os.getenv("COD_FEE", "10"))

        self.port = int(os.getenv("PORT", "8000"))

        for key, value in overrides.items():
            if not hasattr(self, key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret)


@lru_cache
def get_settings() -> Settings:
    return Settings()
