"""Configuration for the risk engine loaded from environment variables."""

from pydantic_settings import BaseSettings


class EngineSettings(BaseSettings):
    """Risk engine configuration.

    All fields are loaded from environment variables prefixed with
    ``LP_ENGINE_`` (for example ``LP_ENGINE_MONTE_CARLO_ITERATIONS``).  These
    are computational knobs only; business thresholds live in
    :class:`lp_engine.models.PolicyConfig`.
    """

    MONTE_CARLO_ITERATIONS: int = 1000
    PACING_WINDOW_QUARTERS: int = 8  # Trailing quarters used for pacing rates
    FORECAST_QUARTERS: int = 8
    HISTORY_QUARTERS: int = 8  # Trailing quarters shown in the report history
    VAR_METHOD: str = "parametric"

    model_config = {
        "env_prefix": "LP_ENGINE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


def get_settings() -> EngineSettings:
    """Return a Settings instance."""
    return EngineSettings()
