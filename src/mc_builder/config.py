"""Runtime configuration for MC Builder."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven runtime settings."""

    model_config = SettingsConfigDict(env_prefix="MC_BUILDER_", env_file=".env", extra="ignore")

    app_name: str = "mc-builder"
    log_level: str = "INFO"
    agent_name: str = Field(default="builder", description="Bot username; names the per-agent state directory.")
    schematics_path: str = Field(
        default="schematics",
        description="Root folder holding the houses/, utility/ and decorative/ schematic categories.",
    )
    state_dir: str = Field(default="bots", description="Parent directory of the per-agent build_state.json files.")
    block_place_delay: float = Field(default=0.8, ge=0.0, description="Seconds to wait between block placements.")
    layer_delay: float = Field(default=1.0, ge=0.0, description="Seconds to wait between finished layers.")
    minecraft_adapter: str = Field(default="echo", description="Game command transport: echo or minescript.")
    minescript_command_prefix: str = "/"
    command_history_path: str | None = Field(
        default=None,
        description="Optional JSONL file receiving the agent command history.",
    )


settings = Settings()
