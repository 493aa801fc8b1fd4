# brewnode/config_loader.py
"""
Config loader for modular YAML configuration.

Files under the config directory:
- supervisor.yml: 'supervisor' (polling and intent timing) and
  'telemetry' (fault floor, positional index table)
- equipment.yml: 'equipment', units added to the built-in registry
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from brewnode.control.intents import (
    MAX_WAIT_S,
    MIN_DISPLAY_S,
    OVERRIDE_GRACE_S,
    IntentTiming,
)
from brewnode.equipment.registry import EquipmentRegistry
from brewnode.telemetry.normalizer import DEFAULT_POSITIONAL_KEYS, SENSOR_FAULT_FLOOR

logger = logging.getLogger(__name__)

__all__ = ["ConfigLoader", "SupervisorSettings"]

DEFAULT_POLL_INTERVAL_S = 2.0
DEFAULT_LOST_CONNECTION_THRESHOLD = 3


class ConfigLoader:
    """Loads and merges modular configuration files."""

    def __init__(self, config_dir="config"):
        self.config_dir = Path(config_dir)
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def load_all(self) -> dict[str, Any]:
        """Load all configuration files and merge them."""
        config: dict[str, Any] = {}

        # Load supervisor config
        supervisor_path = self.config_dir / "supervisor.yml"
        if supervisor_path.exists():
            supervisor_data = self._read(supervisor_path)
            config["supervisor"] = supervisor_data.get("supervisor") or {}
            config["telemetry"] = supervisor_data.get("telemetry") or {}
        else:
            config["supervisor"] = self._create_default_supervisor()
            config["telemetry"] = self._create_default_telemetry()
            self._save_supervisor(config["supervisor"], config["telemetry"])

        # Load equipment extensions
        equipment_path = self.config_dir / "equipment.yml"
        if equipment_path.exists():
            equipment_data = self._read(equipment_path)
            config["equipment"] = equipment_data.get("equipment") or []
        else:
            config["equipment"] = []

        return config

    def _read(self, path: Path) -> dict[str, Any]:
        with open(path) as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a mapping, got {type(data).__name__}")
        return data

    def _create_default_supervisor(self) -> dict[str, Any]:
        return {
            "poll_interval_s": DEFAULT_POLL_INTERVAL_S,
            "min_display_s": MIN_DISPLAY_S,
            "max_wait_s": MAX_WAIT_S,
            "override_grace_s": OVERRIDE_GRACE_S,
            "lost_connection_threshold": DEFAULT_LOST_CONNECTION_THRESHOLD,
            "log_dir": None,
        }

    def _create_default_telemetry(self) -> dict[str, Any]:
        return {
            "sensor_fault_floor": SENSOR_FAULT_FLOOR,
            "positional_keys": dict(DEFAULT_POSITIONAL_KEYS),
        }

    def _save_supervisor(
        self, supervisor: dict[str, Any], telemetry: dict[str, Any]
    ) -> None:
        """Save supervisor configuration to file."""
        supervisor_path = self.config_dir / "supervisor.yml"
        with open(supervisor_path, "w") as f:
            yaml.dump(
                {"supervisor": supervisor, "telemetry": telemetry},
                f,
                default_flow_style=False,
            )
        logger.info(f"Created default supervisor config at {supervisor_path}")


@dataclass
class SupervisorSettings:
    """Validated supervisor settings.

    Attributes:
        poll_interval_s: Seconds between poll ticks
        timing: Intent hold, timeout and override windows
        lost_connection_threshold: Consecutive failed polls before warning
        log_dir: Directory for JSON logs, None for console only
        sensor_fault_floor: Temperatures below this are sensor faults
        positional_keys: Payload index -> reading key for bare numbers
        registry: Equipment registry including configured units
    """

    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    timing: IntentTiming = field(default_factory=IntentTiming)
    lost_connection_threshold: int = DEFAULT_LOST_CONNECTION_THRESHOLD
    log_dir: Path | None = None
    sensor_fault_floor: float = SENSOR_FAULT_FLOOR
    positional_keys: dict[int, str] = field(
        default_factory=lambda: dict(DEFAULT_POSITIONAL_KEYS)
    )
    registry: EquipmentRegistry = field(
        default_factory=lambda: EquipmentRegistry.from_config([])
    )

    @classmethod
    def from_config(cls, config: dict[str, Any]) -> "SupervisorSettings":
        """
        Build settings from a merged configuration dictionary.

        Args:
            config: Output of ConfigLoader.load_all()

        Returns:
            SupervisorSettings

        Raises:
            ValueError: If any value is out of range
        """
        supervisor_cfg = config.get("supervisor") or {}
        telemetry_cfg = config.get("telemetry") or {}

        poll_interval = float(
            supervisor_cfg.get("poll_interval_s", DEFAULT_POLL_INTERVAL_S)
        )
        if poll_interval <= 0:
            raise ValueError(f"poll_interval_s must be > 0, got {poll_interval}")

        timing = IntentTiming(
            min_display_s=float(supervisor_cfg.get("min_display_s", MIN_DISPLAY_S)),
            max_wait_s=float(supervisor_cfg.get("max_wait_s", MAX_WAIT_S)),
            override_grace_s=float(
                supervisor_cfg.get("override_grace_s", OVERRIDE_GRACE_S)
            ),
        )

        threshold = int(
            supervisor_cfg.get(
                "lost_connection_threshold", DEFAULT_LOST_CONNECTION_THRESHOLD
            )
        )
        if threshold < 1:
            raise ValueError(f"lost_connection_threshold must be >= 1, got {threshold}")

        log_dir = supervisor_cfg.get("log_dir")

        positional_cfg = telemetry_cfg.get("positional_keys")
        if positional_cfg is None:
            positional_keys = dict(DEFAULT_POSITIONAL_KEYS)
        else:
            try:
                positional_keys = {int(k): str(v) for k, v in positional_cfg.items()}
            except (AttributeError, ValueError) as e:
                raise ValueError(f"Invalid positional_keys: {positional_cfg!r}") from e

        registry = EquipmentRegistry.from_config(config.get("equipment") or [])

        settings = cls(
            poll_interval_s=poll_interval,
            timing=timing,
            lost_connection_threshold=threshold,
            log_dir=Path(log_dir) if log_dir else None,
            sensor_fault_floor=float(
                telemetry_cfg.get("sensor_fault_floor", SENSOR_FAULT_FLOOR)
            ),
            positional_keys=positional_keys,
            registry=registry,
        )

        logger.info(
            f"Supervisor configured: poll={settings.poll_interval_s}s, "
            f"hold={timing.min_display_s}s, timeout={timing.max_wait_s}s, "
            f"units={len(registry)}"
        )
        return settings
