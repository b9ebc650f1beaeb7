from functools import lru_cache

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Configuration for the end-to-end test server.

    All values can be overridden via environment variables. Prefix: ``NGSDK_E2E_``.
    The port is also read from ``PORT`` so CI runners can inject it.
    """

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3838, validation_alias=AliasChoices("NGSDK_E2E_PORT", "PORT", "port"))
    public_host: str = Field(default="localhost", description="Host name used when building the base URL.")

    # Logging
    log_level: str = Field(default="INFO")
    log_json_output: bool = Field(default=False)

    # Browsers running the tests load pages from another origin
    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"])

    # PBKDF2 iterations for the built-in User model; kept low so tests run fast
    user_hash_iterations: int = Field(default=4, ge=1)

    # Seconds to wait for the listener before spawning a test runner
    startup_timeout: float = Field(default=10.0, gt=0)

    model_config = SettingsConfigDict(
        env_prefix="NGSDK_E2E_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def base_url(self) -> str:
        return f"http://{self.public_host}:{self.port}/"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
