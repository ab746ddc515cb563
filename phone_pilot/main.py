"""phone_pilot main entry point.

Wires the device, the model client, and the task orchestrator together
and exposes a CLI to run a single natural-language task on an Android
device.

Typical usage::

    python -m phone_pilot.main --task "打开微信查看新消息"

Programmatic usage::

    from phone_pilot.main import build_agent

    agent = build_agent(api_key="sk-...")
    outcome = agent.run_task("Open Settings and turn on Wi-Fi")
    print(outcome.status)
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from dataclasses import dataclass

from phone_pilot.config.settings import Settings, load_settings
from phone_pilot.core.app_registry import AppRegistry
from phone_pilot.core.model_client import ModelClient
from phone_pilot.core.orchestrator import TaskOrchestrator
from phone_pilot.models.task import OutcomeStatus, TaskOutcome
from phone_pilot.platform.adb import AdbDevice
from phone_pilot.platform.interface import DeviceInterface

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Phone agent
# ---------------------------------------------------------------------------


@dataclass
class PhoneAgent:
    """Top-level agent holding all component references.

    Constructed via the ``build_agent`` factory function.

    Attributes:
        device: Device-control driver.
        registry: App name <-> package lookup.
        model: Chat-completion client.
        orchestrator: Run loop owner.
        settings: Immutable application configuration.
    """

    device: DeviceInterface
    registry: AppRegistry
    model: ModelClient
    orchestrator: TaskOrchestrator
    settings: Settings

    def run_task(self, task: str) -> TaskOutcome:
        """Run *task* in the background and wait for its outcome.

        Ctrl-C while waiting requests a graceful stop; the run then
        ends with a ``STOPPED`` outcome.
        """
        future = self.orchestrator.start(task)
        try:
            return future.result()
        except KeyboardInterrupt:
            logger.warning("Interrupted, stopping task")
            self.orchestrator.stop()
            return future.result()


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


def build_agent(
    api_key: str = "",
    settings: Settings | None = None,
    device: DeviceInterface | None = None,
) -> PhoneAgent:
    """Create all components and return a wired ``PhoneAgent``.

    Args:
        api_key: Model API key.  Falls back to the environment
            variable named by ``settings.model_api_key_env``.
        settings: Optional settings override.  When ``None`` the
            default settings are used.
        device: Optional device override.  An ``AdbDevice`` is created
            when omitted.

    Returns:
        A fully constructed ``PhoneAgent``.
    """
    if settings is None:
        settings = Settings()

    # 1. App registry
    registry = AppRegistry()

    # 2. Device
    if device is None:
        device = AdbDevice(settings, app_registry=registry)
    logger.info("Device: %s", device.get_device_name())

    # 3. Model client
    model = ModelClient(settings, api_key=api_key)
    logger.info("%s", model.model_info)

    # 4. Orchestrator
    orchestrator = TaskOrchestrator(
        device,
        model,
        settings,
        app_registry=registry,
    )

    return PhoneAgent(
        device=device,
        registry=registry,
        model=model,
        orchestrator=orchestrator,
        settings=settings,
    )


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="phone_pilot",
        description=(
            "phone_pilot -- drive an Android phone with a multimodal "
            "model. Execute tasks via natural language."
        ),
    )
    parser.add_argument(
        "--task",
        "-t",
        required=True,
        help="The task to execute (e.g. 'Open WeChat and check messages').",
    )
    parser.add_argument(
        "--api-key",
        "-k",
        default="",
        help=(
            "Model API key. Falls back to the environment variable named "
            "by model_api_key_env (PHONE_PILOT_API_KEY by default)."
        ),
    )
    parser.add_argument("--base-url", default="", help="OpenAI-compatible API base URL.")
    parser.add_argument("--model", default="", help="Model name.")
    parser.add_argument("--serial", "-s", default="", help="adb device serial.")
    parser.add_argument("--max-steps", type=int, default=None, help="Step budget.")
    parser.add_argument(
        "--lang",
        choices=("zh", "en"),
        default=None,
        help="Prompt language.",
    )
    parser.add_argument("--config", "-c", default="", help="JSON settings file.")
    parser.add_argument("--log-dir", default="", help="Save execution logs here.")
    noise = parser.add_mutually_exclusive_group()
    noise.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging and log each step's thinking and action.",
    )
    noise.add_argument(
        "--quiet",
        "-q",
        action="store_true",
        help="Do not log each step's thinking and action.",
    )
    return parser


def _settings_from_args(args: argparse.Namespace) -> Settings:
    """Load the config file (if any) and apply CLI overrides."""
    settings = load_settings(args.config) if args.config else Settings()

    overrides: dict[str, object] = {}
    if args.base_url:
        overrides["model_base_url"] = args.base_url
    if args.model:
        overrides["model_name"] = args.model
    if args.serial:
        overrides["adb_serial"] = args.serial
    if args.max_steps is not None:
        overrides["max_steps"] = args.max_steps
    if args.lang:
        overrides["lang"] = args.lang
    if args.log_dir:
        overrides["log_dir"] = args.log_dir
    if args.verbose:
        overrides["verbose"] = True
    elif args.quiet:
        overrides["verbose"] = False
    return dataclasses.replace(settings, **overrides)


def main(argv: list[str] | None = None) -> None:
    """Parse CLI arguments, build the agent, run the task, and print results."""
    args = _build_parser().parse_args(argv)

    # -- Logging setup ---------------------------------------------------
    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        settings = _settings_from_args(args)
    except (OSError, ValueError) as exc:
        logger.error("Could not load settings: %s", exc)
        sys.exit(2)

    # -- Build and run ---------------------------------------------------
    logger.info("Building phone agent")
    agent = build_agent(api_key=args.api_key, settings=settings)

    if not agent.device.is_available():
        logger.error(
            "No device available. Check 'adb devices' and the --serial option."
        )
        sys.exit(1)

    logger.info("Running task: %s", args.task)
    outcome = agent.run_task(args.task)

    # -- Print result summary --------------------------------------------
    _print_result_summary(outcome)

    sys.exit(0 if outcome.status is OutcomeStatus.FINISHED else 1)


def _print_result_summary(outcome: TaskOutcome) -> None:
    """Print a human-readable summary of the task outcome.

    Args:
        outcome: The ``TaskOutcome`` returned by the agent.
    """
    separator = "-" * 60
    print(separator)
    print(f"Task:       {outcome.task_description}")
    print(f"Status:     {outcome.status.value.upper()}")
    print(f"Steps:      {outcome.steps_taken}")
    print(f"Duration:   {outcome.duration_ms:.0f} ms")
    print(f"Message:    {outcome.message}")
    print(separator)


if __name__ == "__main__":
    main()
