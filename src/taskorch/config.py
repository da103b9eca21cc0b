"""Runtime configuration for the orchestrator CLI and worker simulation."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True)
class QueueSettings:
    """Claim supervision settings."""

    stale_claim_seconds: int = 1_800


@dataclass(slots=True)
class SimulationSettings:
    """Worker simulation settings."""

    workers: int = 4
    capabilities: tuple[str, ...] = ()
    failure_rate: float = 0.0
    max_idle_polls: int = 3
    seed: int | None = None


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    log_level: str = "WARNING"
    backlog_path: Path = Path("backlog.json")
    queue: QueueSettings = field(default_factory=QueueSettings)
    simulation: SimulationSettings = field(default_factory=SimulationSettings)

    @classmethod
    def from_env(cls, backlog_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        seed_raw = os.getenv("TASKORCH_SIM_SEED", "").strip()
        return cls(
            log_level=os.getenv("TASKORCH_LOG_LEVEL", "WARNING").strip().upper(),
            backlog_path=backlog_path or Path(os.getenv("TASKORCH_BACKLOG_PATH", "backlog.json")),
            queue=QueueSettings(
                stale_claim_seconds=_env_int("TASKORCH_STALE_CLAIM_SECONDS", 1_800),
            ),
            simulation=SimulationSettings(
                workers=_env_int("TASKORCH_SIM_WORKERS", 4),
                capabilities=_csv_tuple(os.getenv("TASKORCH_SIM_CAPABILITIES", "")),
                failure_rate=_env_float("TASKORCH_SIM_FAILURE_RATE", 0.0),
                max_idle_polls=_env_int("TASKORCH_SIM_MAX_IDLE_POLLS", 3),
                seed=_env_int("TASKORCH_SIM_SEED", 0) if seed_raw else None,
            ),
        )

    def validate(self) -> None:
        """Raise configuration error if any setting is out of range."""

        if self.log_level not in _LOG_LEVELS:
            raise ValueError(
                f"TASKORCH_LOG_LEVEL must be one of {', '.join(_LOG_LEVELS)}, "
                f"got {self.log_level!r}.",
            )
        if self.queue.stale_claim_seconds <= 0:
            raise ValueError("TASKORCH_STALE_CLAIM_SECONDS must be > 0.")
        if self.simulation.workers <= 0:
            raise ValueError("TASKORCH_SIM_WORKERS must be a positive integer.")
        if not 0.0 <= self.simulation.failure_rate <= 1.0:
            raise ValueError("TASKORCH_SIM_FAILURE_RATE must be between 0.0 and 1.0.")
        if self.simulation.max_idle_polls <= 0:
            raise ValueError("TASKORCH_SIM_MAX_IDLE_POLLS must be a positive integer.")

    def configure_logging(self) -> None:
        logging.basicConfig(
            level=getattr(logging, self.log_level),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


def _csv_tuple(raw: str) -> tuple[str, ...]:
    deduped: list[str] = []
    seen: set[str] = set()
    for part in raw.split(","):
        normalized = part.strip()
        if not normalized or normalized in seen:
            continue
        seen.add(normalized)
        deduped.append(normalized)
    return tuple(deduped)


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {value!r}") from error


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value.strip())
    except ValueError as error:
        raise ValueError(f"Invalid number value for {name}: {value!r}") from error
