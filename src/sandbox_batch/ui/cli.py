"""Command-line interface router for sandbox-batch."""

from __future__ import annotations

import argparse
import asyncio
import importlib.util
import os
import sys
import uuid
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from sandbox_batch.config import (
    ConfigLoadError,
    ConfigValidationError,
    dump_effective_config,
    load_config,
    redact_config,
)
from sandbox_batch.constants import PROVIDER_KINDS
from sandbox_batch.control_plane import BatchOrchestrator, BatchOrchestratorConfig
from sandbox_batch.observability import (
    LoggingConfig,
    configure_structlog_bridge,
    setup_structured_logging,
    shutdown_logging,
)
from sandbox_batch.persistence import JsonlResultSink
from sandbox_batch.providers import (
    ExecutionCapability,
    InitError,
    OpenAIChatCapability,
    OpenAIChatConfig,
)
from sandbox_batch.sandbox import (
    ContainerLauncher,
    ContainerLauncherConfig,
    ResourceLimitConfig,
    ResourceLimitResolver,
    detect_container,
    is_runtime_available,
    render_suggested_images,
    runtime_not_running_message,
    sanitize_image_name,
)
from sandbox_batch.task_ingestion import TaskListError, load_tasks
from sandbox_batch.ui.render import CLIRenderer


@dataclass(frozen=True, slots=True)
class CLIError(RuntimeError):
    """Typed CLI failure with an explicit process exit code."""

    message: str
    exit_code: int = 1

    def __str__(self) -> str:
        return self.message


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sandbox-batch",
        description=(
            "sandbox-batch: run task lists in bounded concurrent batches against a\n"
            "chat model or inside resource-limited containers.\n\n"
            "Common workflows:\n"
            "  sandbox-batch run --tasks evals/basicEvals.json\n"
            "  sandbox-batch run --provider container --image node:lts-slim\n"
            "  sandbox-batch limits alfonsograziano/node-chartjs:latest\n"
            "  sandbox-batch doctor\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        dest="config_path",
        default=None,
        help="Path to a TOML config file (default: ./sandbox_batch.toml if present).",
    )
    common.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Debug-level logs and full tracebacks on failure.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        "run",
        parents=[common],
        help="Execute a task list in concurrent batches",
    )
    run_parser.add_argument("--tasks", dest="tasks_path", default=None, help="Task list JSON file.")
    run_parser.add_argument("--output", dest="output_path", default=None, help="JSONL result sink.")
    run_parser.add_argument(
        "--batch-size", dest="batch_size", type=int, default=None, help="Tasks per batch."
    )
    run_parser.add_argument(
        "--provider", choices=PROVIDER_KINDS, default=None, help="Execution capability."
    )
    run_parser.add_argument("--image", default=None, help="Container image (container provider).")
    run_parser.add_argument("--memory", default=None, help="Memory limit override, e.g. 4g.")
    run_parser.add_argument("--cpus", default=None, help="CPU limit override, e.g. 1.5.")
    run_parser.add_argument("--log-dir", dest="log_dir", default=None, help="Log root directory.")
    run_parser.add_argument(
        "--fail-on-task-error",
        action="store_true",
        default=False,
        help="Exit with status 1 when any task produced a failure record.",
    )
    run_parser.set_defaults(handler=_cmd_run)

    limits_parser = subparsers.add_parser(
        "limits",
        parents=[common],
        help="Show the resource flags resolved for an image",
    )
    limits_parser.add_argument("image", help="Image reference, e.g. node:lts-slim.")
    limits_parser.add_argument("--memory", default=None, help="Memory limit override.")
    limits_parser.add_argument("--cpus", default=None, help="CPU limit override.")
    limits_parser.add_argument("--json", action="store_true", default=False)
    limits_parser.set_defaults(handler=_cmd_limits)

    doctor_parser = subparsers.add_parser(
        "doctor",
        parents=[common],
        help="Check container detection, runtime availability, and credentials",
    )
    doctor_parser.add_argument("--json", action="store_true", default=False)
    doctor_parser.set_defaults(handler=_cmd_doctor)

    images_parser = subparsers.add_parser(
        "images",
        parents=[common],
        help="List suggested container images",
    )
    images_parser.set_defaults(handler=_cmd_images)

    config_parser = subparsers.add_parser(
        "config",
        parents=[common],
        help="Print the redacted effective configuration",
    )
    config_parser.add_argument("--json", action="store_true", default=False)
    config_parser.set_defaults(handler=_cmd_config)

    return parser


# ---------------------------------------------------------------------------
# Entrypoints
# ---------------------------------------------------------------------------


def run_cli(argv: Sequence[str] | None = None) -> int:
    """Parse argv, route to a command handler, and return process exit code."""

    configure_structlog_bridge()
    parser = build_parser()
    namespace = parser.parse_args(list(argv) if argv is not None else None)
    handler = getattr(namespace, "handler", None)
    if not callable(handler):
        parser.print_help(sys.stderr)
        return 2

    try:
        result = handler(namespace)
    except CLIError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return exc.exit_code
    return int(result)


def build_capability(config: Mapping[str, Any]) -> ExecutionCapability:
    """Construct the execution capability selected by ``provider.kind``."""

    kind = config["provider"]["kind"]
    if kind == "container":
        resolver = ResourceLimitResolver(ResourceLimitConfig.from_config(config))
        return ContainerLauncher(ContainerLauncherConfig.from_config(config), resolver)
    return OpenAIChatCapability(OpenAIChatConfig.from_config(config))


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


def _cmd_run(args: argparse.Namespace) -> int:
    config = _load_effective_config(
        args,
        {
            "run.tasks_path": _absolute_path(args.tasks_path),
            "run.output_path": _absolute_path(args.output_path),
            "run.batch_size": args.batch_size,
            "provider.kind": args.provider,
            "container.image": args.image,
            "container.memory_override": args.memory,
            "container.cpu_override": args.cpus,
            "observability.log_dir": _absolute_path(args.log_dir),
        },
    )
    observability = config["observability"]
    run_id = _new_run_id()
    logging_handle = setup_structured_logging(
        LoggingConfig(
            run_id=run_id,
            base_log_dir=observability["log_dir"],
            level="DEBUG" if args.verbose else observability["log_level"],
            log_to_stderr=observability["log_to_stderr"],
            redact_secrets=observability["redact_secrets"],
        )
    )
    try:
        try:
            capability = build_capability(config)
            orchestrator = BatchOrchestrator(
                BatchOrchestratorConfig.from_config(config),
                capability,
                sink=JsonlResultSink(config["run"]["output_path"]),
            )
        except ValueError as exc:
            raise CLIError(str(exc), exit_code=2) from exc

        tasks_path = config["run"]["tasks_path"]
        try:
            summary = asyncio.run(orchestrator.run(lambda: load_tasks(tasks_path)))
        except TaskListError as exc:
            raise CLIError(str(exc), exit_code=2) from exc
        except InitError as exc:
            raise CLIError(str(exc), exit_code=3) from exc
    finally:
        shutdown_logging(logging_handle)

    renderer = CLIRenderer(verbose=args.verbose)
    renderer.kv("Run ID", run_id)
    for key, value in summary.to_dict().items():
        renderer.kv(key, value)
    renderer.kv("log", logging_handle.log_path)
    if summary.failed and args.fail_on_task_error:
        return 1
    return 0


def _cmd_limits(args: argparse.Namespace) -> int:
    config = _load_effective_config(
        args,
        {"container.memory_override": args.memory, "container.cpu_override": args.cpus},
    )
    try:
        resolver = ResourceLimitResolver(ResourceLimitConfig.from_config(config))
    except ValueError as exc:
        raise CLIError(str(exc), exit_code=2) from exc
    flags = resolver.compute_resource_limits(args.image)
    image_valid = sanitize_image_name(args.image) is not None
    payload: dict[str, object] = {
        "command": "limits",
        "image": args.image,
        "image_valid": image_valid,
        "mem_flag": flags.mem_flag,
        "cpu_flag": flags.cpu_flag,
    }
    if args.json:
        CLIRenderer().json(payload)
        return 0

    renderer = CLIRenderer(verbose=args.verbose)
    renderer.kv("Image", args.image)
    renderer.kv("Memory flag", flags.mem_flag or "(none)")
    renderer.kv("CPU flag", flags.cpu_flag or "(none)")
    if not image_valid:
        renderer.text("  Warning: image name would be rejected at launch")
    return 0


def _cmd_doctor(args: argparse.Namespace) -> int:
    checks: list[tuple[str, bool, str]] = []

    config: dict[str, Any] | None = None
    try:
        config = _load_effective_config(args, {})
        checks.append(("config", True, "loaded successfully"))
    except CLIError as exc:
        checks.append(("config", False, str(exc)))

    detection = detect_container()
    if detection.in_container:
        checks.append(("environment", True, f"inside a container ({detection.indicator})"))
    else:
        checks.append(("environment", True, "host (no container detected)"))

    runtime = config["container"]["runtime"] if config is not None else "docker"
    if is_runtime_available(runtime):
        checks.append((f"runtime:{runtime}", True, "daemon is reachable"))
    else:
        checks.append((f"runtime:{runtime}", False, runtime_not_running_message(runtime)))

    if importlib.util.find_spec("openai") is not None:
        checks.append(("sdk:openai", True, "installed"))
    else:
        checks.append(("sdk:openai", False, "not installed"))

    if config is not None:
        key_env = config["provider"]["api_key_env"]
        if os.environ.get(key_env, "").strip():
            checks.append(("credentials", True, f"{key_env} is set"))
        else:
            checks.append(("credentials", False, f"{key_env} is not set"))

    if args.json:
        CLIRenderer().json(
            {
                "command": "doctor",
                "checks": [
                    {"name": name, "status": "ok" if passed else "fail", "detail": detail}
                    for name, passed, detail in checks
                ],
            }
        )
        return 0

    renderer = CLIRenderer(verbose=args.verbose)
    renderer.heading("sandbox-batch doctor")
    for name, passed, detail in checks:
        if passed:
            renderer.ok(f"{name}: {detail}")
        else:
            renderer.fail(f"{name}: {detail}")
    return 0


def _cmd_images(args: argparse.Namespace) -> int:
    CLIRenderer(verbose=args.verbose).text(render_suggested_images())
    return 0


def _cmd_config(args: argparse.Namespace) -> int:
    config = _load_effective_config(args, {})
    if args.json:
        CLIRenderer().json({"command": "config", "config": redact_config(config)})
        return 0
    CLIRenderer(verbose=args.verbose).text(dump_effective_config(config, indent=2))
    return 0


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_effective_config(
    args: argparse.Namespace, overrides: Mapping[str, object]
) -> dict[str, Any]:
    try:
        return load_config(args.config_path, cli_overrides=overrides)
    except (ConfigLoadError, ConfigValidationError) as exc:
        raise CLIError(str(exc), exit_code=2) from exc


def _absolute_path(raw: str | None) -> str | None:
    # CLI paths are relative to the working directory, not the config file.
    if raw is None:
        return None
    return Path(raw).expanduser().resolve().as_posix()


def _new_run_id() -> str:
    stamp = datetime.now(tz=UTC).strftime("%Y%m%dT%H%M%SZ")
    return f"{stamp}-{uuid.uuid4().hex[:6]}"


__all__ = ["CLIError", "build_capability", "build_parser", "run_cli"]
