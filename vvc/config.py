"""OpenVVC configuration loading and validation.

Configs are YAML files.  The ``vvc`` section drives the control agent; the
literal values below are only defaults and every one of them can be
overridden::

    node:
      uuid: slave-1
      listen: 0.0.0.0:51870
    vvc:
      round_time_ms: 500
      request_timeout_ms: 100
      validity_floor: -10.0
      coordinator: explosion.ece.ncsu.edu:5001
      actuator_slots: [SST1, SST2, SST3]
      command_signal: AIN/Reactive_Pwr_cmd
      measurement: {device_type: SST1, signal: AOUT/Active_Pwr_Fb}
      advisory: {control_factor: 2, phase_measurement: 3.0, reading_location: SSTI SSTII SSTIII}
      max_gradient_age_s: null
    scheduler:
      phases: {vvc: 2000}
    devices: []

Call :func:`load_config` at startup to fail fast on a broken file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml

logger = logging.getLogger("OpenVVC.Config")

DEFAULT_READINGS: Dict[str, Tuple[str, str]] = {
    "generation": ("Drer", "generation"),
    "storage": ("Desd", "storage"),
    "load": ("Load", "drain"),
    "gateway": ("Sst", "gateway"),
}


class ConfigError(ValueError):
    """Raised when a config file is missing or invalid."""

    def __init__(self, errors: List[str]):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


@dataclass
class VVCConfig:
    """Settings for one Volt/VAR agent."""

    uuid: str = "vvc-node"
    listen: str = "0.0.0.0:51870"
    round_time_ms: int = 500
    request_timeout_ms: int = 100
    validity_floor: float = -10.0
    coordinator: str = "explosion.ece.ncsu.edu:5001"
    actuator_slots: List[str] = field(default_factory=lambda: ["SST1", "SST2", "SST3"])
    command_signal: str = "AIN/Reactive_Pwr_cmd"
    measurement_device: str = "SST1"
    measurement_signal: str = "AOUT/Active_Pwr_Fb"
    control_factor: int = 2
    phase_measurement: float = 3.0
    reading_location: str = "SSTI SSTII SSTIII"
    max_gradient_age_s: Optional[float] = None
    readings: Dict[str, Tuple[str, str]] = field(default_factory=lambda: dict(DEFAULT_READINGS))

    @property
    def round_time_s(self) -> float:
        return self.round_time_ms / 1000.0

    @property
    def request_timeout_s(self) -> float:
        return self.request_timeout_ms / 1000.0

    @classmethod
    def from_dict(cls, config: Dict[str, Any]) -> VVCConfig:
        """Build from a full config dict (``node`` and ``vvc`` sections).

        Raises:
            ConfigError: A value cannot be converted to its field type.
        """
        try:
            return cls._from_dict(config)
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise ConfigError([f"Cannot build vvc config: {exc!r}"]) from exc

    @classmethod
    def _from_dict(cls, config: Dict[str, Any]) -> VVCConfig:
        node = config.get("node") or {}
        vvc = config.get("vvc") or {}
        measurement = vvc.get("measurement") or {}
        advisory = vvc.get("advisory") or {}
        defaults = cls()

        readings = dict(DEFAULT_READINGS)
        for name, spec in (vvc.get("readings") or {}).items():
            readings[name] = (str(spec["device_type"]), str(spec["signal"]))

        max_age = vvc.get("max_gradient_age_s")
        return cls(
            uuid=str(node.get("uuid", defaults.uuid)),
            listen=str(node.get("listen", defaults.listen)),
            round_time_ms=int(vvc.get("round_time_ms", defaults.round_time_ms)),
            request_timeout_ms=int(vvc.get("request_timeout_ms", defaults.request_timeout_ms)),
            validity_floor=float(vvc.get("validity_floor", defaults.validity_floor)),
            coordinator=str(vvc.get("coordinator", defaults.coordinator)),
            actuator_slots=list(vvc.get("actuator_slots", defaults.actuator_slots)),
            command_signal=str(vvc.get("command_signal", defaults.command_signal)),
            measurement_device=str(measurement.get("device_type", defaults.measurement_device)),
            measurement_signal=str(measurement.get("signal", defaults.measurement_signal)),
            control_factor=int(advisory.get("control_factor", defaults.control_factor)),
            phase_measurement=float(advisory.get("phase_measurement", defaults.phase_measurement)),
            reading_location=str(advisory.get("reading_location", defaults.reading_location)),
            max_gradient_age_s=float(max_age) if max_age is not None else None,
            readings=readings,
        )


def _is_address(value: Any) -> bool:
    if not isinstance(value, str) or ":" not in value:
        return False
    host, _, port = value.rpartition(":")
    return bool(host) and port.isdigit()


def _signal_errors(where: str, spec: Dict[str, Any], required: bool) -> List[str]:
    errors = []
    for key in ("device_type", "signal"):
        if key not in spec:
            if required:
                errors.append(f"'{where}' is missing '{key}'")
        elif not isinstance(spec[key], str) or not spec[key]:
            errors.append(f"'{where}.{key}' must be a non-empty string")
    return errors


def validate_config(config: Any) -> Tuple[bool, List[str]]:
    """Validate a loaded config dict.

    Returns:
        A ``(is_valid, errors)`` tuple.  ``is_valid`` is ``True`` only when
        ``errors`` is empty.
    """
    if not isinstance(config, dict):
        return False, ["Config must be a mapping (check YAML syntax)"]

    errors: List[str] = []

    vvc = config.get("vvc") or {}
    if not isinstance(vvc, dict):
        return False, ["'vvc' must be a mapping (dict), not a scalar"]

    # ── timing ────────────────────────────────────────────────────────────────
    round_time = vvc.get("round_time_ms", 500)
    if not isinstance(round_time, (int, float)) or round_time <= 0:
        errors.append("'vvc.round_time_ms' must be a positive number")
    timeout = vvc.get("request_timeout_ms", 100)
    if not isinstance(timeout, (int, float)) or timeout < 0:
        errors.append("'vvc.request_timeout_ms' must be zero or positive")

    node = config.get("node")
    if node is not None and not isinstance(node, dict):
        errors.append("'node' must be a mapping")
        node = None
    uuid = (node or {}).get("uuid")
    if uuid is not None and (not isinstance(uuid, str) or not uuid):
        errors.append("'node.uuid' must be a non-empty string")

    # ── peers ─────────────────────────────────────────────────────────────────
    if "coordinator" in vvc and not _is_address(vvc["coordinator"]):
        errors.append("'vvc.coordinator' must be a host:port string")
    listen = (node or {}).get("listen")
    if listen is not None and not _is_address(listen):
        errors.append("'node.listen' must be a host:port string")

    # ── actuators ─────────────────────────────────────────────────────────────
    slots = vvc.get("actuator_slots", ["SST1", "SST2", "SST3"])
    if not isinstance(slots, list) or not slots:
        errors.append("'vvc.actuator_slots' must be a non-empty list")
    elif not all(isinstance(s, str) and s for s in slots):
        errors.append("'vvc.actuator_slots' entries must be device type names")

    if not isinstance(vvc.get("command_signal", ""), str):
        errors.append("'vvc.command_signal' must be a signal name")

    measurement = vvc.get("measurement")
    if measurement is not None:
        if not isinstance(measurement, dict):
            errors.append("'vvc.measurement' must be a mapping")
        else:
            errors.extend(_signal_errors("vvc.measurement", measurement, required=False))

    # ── readings / advisory ───────────────────────────────────────────────────
    readings = vvc.get("readings")
    if readings is not None:
        if not isinstance(readings, dict):
            errors.append("'vvc.readings' must be a mapping of name -> {device_type, signal}")
        else:
            for name, spec in readings.items():
                if not isinstance(spec, dict):
                    errors.append(f"'vvc.readings.{name}' must be a mapping")
                else:
                    errors.extend(_signal_errors(f"vvc.readings.{name}", spec, required=True))

    advisory = vvc.get("advisory")
    if advisory is not None:
        if not isinstance(advisory, dict):
            errors.append("'vvc.advisory' must be a mapping")
        else:
            factor = advisory.get("control_factor", 2)
            if isinstance(factor, bool) or not isinstance(factor, int):
                errors.append("'vvc.advisory.control_factor' must be an integer")
            phase = advisory.get("phase_measurement", 3.0)
            if isinstance(phase, bool) or not isinstance(phase, (int, float)):
                errors.append("'vvc.advisory.phase_measurement' must be a number")
            if not isinstance(advisory.get("reading_location", ""), str):
                errors.append("'vvc.advisory.reading_location' must be a string")

    floor = vvc.get("validity_floor", -10.0)
    if not isinstance(floor, (int, float)):
        errors.append("'vvc.validity_floor' must be a number")

    max_age = vvc.get("max_gradient_age_s")
    if max_age is not None and (not isinstance(max_age, (int, float)) or max_age <= 0):
        errors.append("'vvc.max_gradient_age_s' must be null or a positive number")

    # ── devices / scheduler ───────────────────────────────────────────────────
    devices = config.get("devices", [])
    if devices is not None and not isinstance(devices, list):
        errors.append("'devices' must be a list")
    elif devices and not all(isinstance(d, dict) for d in devices):
        errors.append("'devices' entries must be mappings")
    scheduler = config.get("scheduler") or {}
    if not isinstance(scheduler, dict):
        errors.append("'scheduler' must be a mapping")
        scheduler = {}
    phases = scheduler.get("phases")
    if phases is not None:
        if not isinstance(phases, dict) or not phases:
            errors.append("'scheduler.phases' must be a non-empty mapping")
        elif any(not isinstance(ms, (int, float)) or ms <= 0 for ms in phases.values()):
            errors.append("'scheduler.phases' lengths must be positive numbers")
        elif "vvc" not in phases:
            errors.append("'scheduler.phases' must include a 'vvc' phase")

    return len(errors) == 0, errors


def load_config(path: str) -> Dict[str, Any]:
    """Load and validate a YAML config file.

    Raises:
        ConfigError: File missing, unparsable, or invalid.
    """
    try:
        with open(path) as f:
            config = yaml.safe_load(f) or {}
    except FileNotFoundError as exc:
        raise ConfigError([f"Config file not found: {path}"]) from exc
    except yaml.YAMLError as exc:
        raise ConfigError([f"Config file is not valid YAML: {exc}"]) from exc

    ok, errors = validate_config(config)
    if not ok:
        for msg in errors:
            logger.error("Config error: %s", msg)
        raise ConfigError(errors)

    logger.info(f"Loaded configuration for node {(config.get('node') or {}).get('uuid', '?')}")
    return config
