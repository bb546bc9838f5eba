"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Home Assistant
    hass_url: str = "http://homeassistant:8123"
    hass_token: str = ""

    # Jobs file; empty means search the default locations
    screenshots_config: str = ""

    # Storage
    output_dir: str = "./output"
    url_prefix: str = "/local/screenshots"
    keep_history: bool = False
    db_path: str = "./panelsnap.db"

    # Browser
    chromium_executable: str = ""
    is_addon: bool = False
    stagger_seconds: float = 2.0  # first-firing offset per job index

    # Server
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 10000

    model_config = {"env_prefix": "", "env_file": ".env"}

    @property
    def hass_enabled(self) -> bool:
        return bool(self.hass_url and self.hass_token)


settings = Settings()
