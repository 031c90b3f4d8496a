from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Saved geocoding preference and keys; request values override these
    geocoding_provider: str = 'nominatim'
    locationiq_api_key: str | None = None
    google_maps_api_key: str | None = None

    nominatim_user_agent: str = 'coverage-geo/0.1'
    # Endpoint overrides, mainly for mock servers
    nominatim_base_url: str | None = None
    locationiq_base_url: str | None = None
    google_base_url: str | None = None

    request_timeout_s: float = 10.0
    max_retries: int = 3
    default_radius_miles: float = 20.0

    county_data_path: Path = Path('data/us-counties.json')

    class Config:
        env_prefix = ""
        env_file   = ".env"
        extra      = "ignore"

settings = Settings()
