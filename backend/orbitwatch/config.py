from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "OrbitWatch API"
    database_url: str = "sqlite:///./orbitwatch.db"
    tle_source_url: str = "https://celestrak.org/NORAD/elements/gp.php?GROUP=active&FORMAT=tle"
    ingestion_enabled: bool = False
    ingestion_interval_hours: int = 6
    ingest_max_objects: int = 300
    leo_max_altitude_km: float = 2000.0

    # Screening pass
    altitude_band_km: float = 50.0
    tca_horizon_minutes: int = 90
    tca_step_minutes: int = 1
    refine_max_workers: int = 4
    refine_timeout_seconds: float = 10.0

    # Leave IERS table downloads off so frame conversion never blocks on the network.
    iers_auto_download: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
