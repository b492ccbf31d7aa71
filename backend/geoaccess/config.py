from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+asyncpg://geo_admin:geo_secret@db:5432/geoaccess"
    JWT_SECRET: str = "geoaccess-jwt-secret-change-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRY_MINUTES: int = 480
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Navigation targets used by the route guard
    LOGIN_PATH: str = "/auth/login"
    LANDING_PATH: str = "/dashboard"
    COMPLETE_PROFILE_PATH: str = "/complete-profile"

    # Accounts treated as developer tier regardless of their stored role
    DEVELOPER_EMAILS: list[str] = []

    # Session store / registry tuning
    PROFILE_POLL_SECONDS: float = 2.0
    SESSION_SETTLE_SECONDS: float = 3.0
    SESSION_IDLE_MINUTES: int = 60
    DIRECTORY_REFRESH_MINUTES: int = 15

    class Config:
        env_file = ".env"


settings = Settings()
