"""Configuration defaults for the phone_pilot agent.

Provides the ``Settings`` dataclass that holds every tunable parameter
for the run loop, the model API client, action timing, and the device
layer.

Typical usage::

    from phone_pilot.config.settings import get_default_settings

    settings = get_default_settings()
    print(settings.max_steps)
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class Settings:
    """Immutable configuration for the entire agent.

    Attributes:
        max_steps: Step budget for a single run.  The run ends with a
            "max steps" outcome once this many steps have executed
            without a finish action.
        lang: Prompt language, ``"zh"`` or ``"en"``.
        verbose: When True the orchestrator logs each step's reasoning
            and action description at INFO level.  The CLI sets it from
            ``--verbose`` / ``--quiet``.
        max_consecutive_failures: Abort the run after this many failed
            steps in a row.  ``0`` disables the check, which keeps the
            loop stepping until the budget is exhausted.
        model_base_url: Base URL of the OpenAI-compatible API (without
            the ``/chat/completions`` suffix).
        model_name: Model identifier sent in every request.
        model_api_key_env: Environment variable consulted when no API
            key is passed explicitly.
        max_tokens: Completion token limit per request.
        temperature: Sampling temperature.
        top_p: Nucleus sampling parameter.
        frequency_penalty: Frequency penalty parameter.
        api_timeout_seconds: HTTP timeout for one chat completion.
        api_max_retries: Attempts per chat completion for transient
            failures (network errors and HTTP 5xx).
        api_backoff_base_seconds: Base delay for exponential back-off
            between API retries.
        action_delay_seconds: Settle delay applied before and after
            device-affecting calls.
        default_wait_seconds: Wait duration used when a Wait action's
            duration text carries no digits.
        double_tap_interval_seconds: Pause between the two taps of a
            double tap.
        long_press_duration_ms: Hold time for long presses.
        swipe_duration_ms: Gesture time for swipes.
        adb_path: Path or name of the ``adb`` executable.
        adb_serial: Device serial passed to ``adb -s``.  Empty uses the
            only connected device.
        adb_command_timeout_seconds: Timeout for a single adb command.
        screen_width: Fallback screen width in pixels when the device
            cannot report its size.
        screen_height: Fallback screen height in pixels.
        log_dir: Directory where execution logs are saved.  Empty
            disables saving.
    """

    # -- Agent loop -----------------------------------------------------------
    max_steps: int = 100
    lang: str = "zh"
    verbose: bool = True
    max_consecutive_failures: int = 0

    # -- Model API ------------------------------------------------------------
    model_base_url: str = "http://localhost:8000/v1"
    model_name: str = "autoglm-phone-9b"
    model_api_key_env: str = "PHONE_PILOT_API_KEY"
    max_tokens: int = 3000
    temperature: float = 0.0
    top_p: float = 0.85
    frequency_penalty: float = 0.2
    api_timeout_seconds: float = 300.0
    api_max_retries: int = 3
    api_backoff_base_seconds: float = 2.0

    # -- Action timing --------------------------------------------------------
    action_delay_seconds: float = 0.2
    default_wait_seconds: int = 3
    double_tap_interval_seconds: float = 0.1
    long_press_duration_ms: int = 1000
    swipe_duration_ms: int = 300

    # -- Device ---------------------------------------------------------------
    adb_path: str = "adb"
    adb_serial: str = ""
    adb_command_timeout_seconds: float = 15.0
    screen_width: int = 1080
    screen_height: int = 2400

    # -- Logging --------------------------------------------------------------
    log_dir: str = ""

    # -- Factory & serialisation ----------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        """Create a ``Settings`` instance from a plain dictionary.

        Unknown keys are silently ignored so that forward-compatible
        config files do not break older agent versions.

        Args:
            data: Dictionary whose keys correspond to ``Settings``
                field names.

        Returns:
            A new ``Settings`` instance populated from *data*, with
            defaults filling any missing keys.
        """
        known_names = {f.name for f in fields(cls)}
        filtered = {k: v for k, v in data.items() if k in known_names}
        return cls(**filtered)

    def to_dict(self) -> dict[str, Any]:
        """Serialise the settings to a plain dictionary."""
        return asdict(self)


def get_default_settings() -> Settings:
    """Return a ``Settings`` instance with all default values.

    Call ``Settings.from_dict`` or ``load_settings`` when you need to
    overlay user overrides on top of the defaults.
    """
    return Settings()


def load_settings(path: str | Path) -> Settings:
    """Load settings from a JSON file.

    The file must contain a single JSON object.  Keys that do not name
    a ``Settings`` field are ignored (see ``Settings.from_dict``).

    Args:
        path: Location of the JSON config file.

    Returns:
        The loaded ``Settings``.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the file does not contain a JSON object.
    """
    config_path = Path(path)
    with config_path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError(
            f"Config file {config_path} must contain a JSON object, "
            f"got {type(data).__name__}"
        )
    return Settings.from_dict(data)
