import logging
import os

from pydantic import BaseModel, Field

from skein.modes import DEFAULT_MODE, ModeConfig


LOG_FORMAT = '%(asctime)s:%(name)s:%(levelname)s:%(message)s'
LOG_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class Settings(BaseModel):
    """Runtime settings for the dispatcher and the turn loop.

    Args:
        mode: Active mode slug.
        custom_modes: User-defined modes, shadowing built-ins by slug.
        experiments: Feature flags gating experimental tools.
        max_consecutive_mistakes: Validation failures tolerated before the
            turn loop stops and asks for guidance.
        max_turns: Maximum provider round-trips per task.
        log_level: Level name for :func:`configure_logging`.
        log_file: Optional file that also receives log records.
    """

    mode: str = DEFAULT_MODE
    custom_modes: list[ModeConfig] = Field(default_factory=list)
    experiments: dict[str, bool] = Field(default_factory=dict)
    max_consecutive_mistakes: int = 3
    max_turns: int = 25
    log_level: str = "INFO"
    log_file: str | None = None

    model_config = {"arbitrary_types_allowed": True}

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Read ``SKEIN_*`` environment variables.

        ``SKEIN_EXPERIMENTS`` is a comma separated list of flags, each
        either ``name`` (enabled) or ``name=false``.
        """
        values: dict = {}
        if mode := os.getenv("SKEIN_MODE"):
            values["mode"] = mode
        if experiments := os.getenv("SKEIN_EXPERIMENTS"):
            values["experiments"] = _parse_flags(experiments)
        if mistakes := os.getenv("SKEIN_MAX_MISTAKES"):
            values["max_consecutive_mistakes"] = int(mistakes)
        if max_turns := os.getenv("SKEIN_MAX_TURNS"):
            values["max_turns"] = int(max_turns)
        if level := os.getenv("SKEIN_LOG_LEVEL"):
            values["log_level"] = level.upper()
        if log_file := os.getenv("SKEIN_LOG_FILE"):
            values["log_file"] = log_file
        values.update(overrides)
        return cls(**values)


def _parse_flags(raw: str) -> dict[str, bool]:
    flags: dict[str, bool] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        name, _, value = item.partition("=")
        flags[name.strip()] = value.strip().lower() not in ("0", "false", "no", "off")
    return flags


def configure_logging(settings: Settings | None = None) -> None:
    """Install the project's log format on the root logger."""
    settings = settings or Settings()
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file))
    logging.basicConfig(
        level=settings.log_level,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
