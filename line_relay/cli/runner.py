from __future__ import annotations

import asyncio
import importlib
import json
import sys
from pathlib import Path
from typing import Any

from line_relay.config.container import Container
from line_relay.config.context import ModuleConfig
from line_relay.config.env_loader import load_env_file
from line_relay.modules.base import AsyncModule
from line_relay.services.health.health_server import HealthCheckServer
from line_relay.services.lifecycle.lifecycle_manager import LifecycleManager
from line_relay.services.logger.factory import LoggerFactory
from line_relay.services.metrics.interface import MetricsInterface
from line_relay.services.metrics.noop_metrics import NoopMetrics
from line_relay.services.registry import resolve_implementation, resolve_interface_type
from line_relay.services.secrets.env_secrets import EnvSecrets
from line_relay.services.secrets.interface import SecretsInterface

MODULES_DIR = Path(__file__).resolve().parent.parent / "modules"

USAGE = "Usage: python -m line_relay run <module_name> [flags] [module args]"

# Global flags that select interface implementations.
# Maps flag name -> default value (None = not registered unless explicitly requested).
_GLOBAL_FLAGS: dict[str, str | None] = {
    "store": "memory",
    "chat": "memory",
    "orders": "memory",
    "metrics": None,
    "log": "pretty",
}

# Module types that should get health check server and lifecycle signal handling
_SERVICE_TYPES = {"service", "worker"}


def load_module_descriptor(module_name: str) -> dict[str, Any]:
    module_json = MODULES_DIR / module_name / "module.json"
    if not module_json.exists():
        raise FileNotFoundError(f"module '{module_name}' not found at {module_json}")
    with open(module_json) as f:
        return json.load(f)


def parse_module_args(
    descriptor: dict[str, Any], raw_args: list[str]
) -> dict[str, Any]:
    """Parse CLI args against the module.json arg definitions."""
    arg_defs: list[dict[str, Any]] = descriptor.get("args", [])
    known = {arg_def["name"] for arg_def in arg_defs}
    parsed: dict[str, str] = {}
    errors: list[str] = []

    i = 0
    while i < len(raw_args):
        arg = raw_args[i]
        if arg.startswith("--"):
            key, eq, inline = arg[2:].partition("=")
            if eq:
                parsed[key] = inline
                i += 1
            elif i + 1 < len(raw_args) and not raw_args[i + 1].startswith("--"):
                parsed[key] = raw_args[i + 1]
                i += 2
            else:
                parsed[key] = "true"
                i += 1
            if key not in known:
                errors.append(f"Unknown argument: --{key}")
        else:
            errors.append(f"Unexpected positional argument: {arg}")
            i += 1

    result: dict[str, Any] = {}
    for arg_def in arg_defs:
        name = arg_def["name"]
        if name in parsed:
            try:
                result[name] = _cast_value(parsed[name], arg_def.get("type", "string"))
            except ValueError:
                errors.append(
                    f"Invalid value for --{name}: '{parsed[name]}' "
                    f"(expected {arg_def.get('type', 'string')})"
                )
                continue
        elif "default" in arg_def:
            result[name] = arg_def["default"]
        elif arg_def.get("required", False):
            errors.append(f"Missing required argument: --{name}")

        if name in result and "choices" in arg_def:
            if result[name] not in arg_def["choices"]:
                errors.append(
                    f"Invalid value for --{name}: '{result[name]}' "
                    f"(choices: {', '.join(str(c) for c in arg_def['choices'])})"
                )

    if errors:
        raise ValueError("; ".join(errors))

    return result


def _cast_value(value: str, type_name: str) -> Any:
    match type_name:
        case "integer":
            return int(value)
        case "float":
            return float(value)
        case "boolean":
            return value.lower() in ("true", "1", "yes")
        case _:
            return value


def _parse_env_overrides(raw: str) -> dict[str, str]:
    """Parse a JSON string into env overrides. Validates types."""
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("--env value must be a JSON object")
    for k, v in data.items():
        if not isinstance(k, str) or not isinstance(v, str):
            raise ValueError("--env JSON must have string keys and string values")
    return data


def _extract_global_flags(
    remaining: list[str],
) -> tuple[dict[str, str], dict[str, str], list[str], int]:
    """Extract global flags from remaining args.

    Returns (impl_flags, env_overrides, filtered_module_args, health_port).
    impl_flags holds only the flags given on the command line; defaults are
    applied when the container is built.
    """
    impl_flags: dict[str, str] = {}
    env_overrides: dict[str, str] = {}
    env_file: str | None = None
    health_port: int = 8080
    filtered_args: list[str] = []

    all_flag_names = set(_GLOBAL_FLAGS.keys()) | {"env", "env-file", "health-port"}

    i = 0
    while i < len(remaining):
        flag = remaining[i]
        if flag.startswith("--") and flag[2:] in all_flag_names and i + 1 < len(remaining):
            name = flag[2:]
            value = remaining[i + 1]
            if name == "env":
                env_overrides.update(_parse_env_overrides(value))
            elif name == "env-file":
                env_file = value
            elif name == "health-port":
                health_port = int(value)
            else:
                impl_flags[name] = value
            i += 2
        else:
            filtered_args.append(remaining[i])
            i += 1

    # File vars are lower priority; --env wins
    if env_file:
        merged = load_env_file(env_file)
        merged.update(env_overrides)
        env_overrides = merged

    if "log" in impl_flags and "LOG_IMPL" not in env_overrides:
        env_overrides["LOG_IMPL"] = impl_flags["log"]

    return impl_flags, env_overrides, filtered_args, health_port


def print_module_help(descriptor: dict[str, Any]) -> None:
    version = descriptor.get("version", "")
    version_suffix = f" v{version}" if version else ""
    print(f"\n  {descriptor['display_name']}{version_suffix}")
    print(f"  {descriptor['description']}\n")
    module_type = descriptor.get("type")
    if module_type:
        print(f"  Type: {module_type}")
        print()

    args = descriptor.get("args", [])
    if args:
        print("  Module arguments:")
        for arg in args:
            required = " (required)" if arg.get("required") else ""
            default = f" [default: {arg['default']}]" if "default" in arg else ""
            choices_list = arg.get("choices")
            choices = (
                f" (choices: {', '.join(str(c) for c in choices_list)})"
                if choices_list
                else ""
            )
            print(
                f"    --{arg['name']:26s} {arg['description']}{required}{default}{choices}"
            )
        print()

    print("  Global flags:")
    print(f"    --{'store':26s} Key-value store: memory, redis [default: memory]")
    print(f"    --{'chat':26s} Chat delivery: memory, line [default: memory]")
    print(f"    --{'orders':26s} Order lookup: memory, proship [default: memory]")
    print(f"    --{'metrics':26s} Metrics: noop, memory, prometheus [default: noop]")
    print(f"    --{'log':26s} Logging format: pretty, json, memory [default: pretty]")
    print(f"    --{'health-port':26s} Health check HTTP port (service/worker only) [default: 8080]")
    print(f"    --{'env':26s} JSON string of env var overrides")
    print(f"    --{'env-file':26s} Env file name (.env/<name>.env) or path")
    print()


def _build_container(
    impl_flags: dict[str, str],
    env_overrides: dict[str, str],
    module_args: dict[str, Any],
    health_port: int = 8080,
    module_type: str = "job",
) -> Container:
    """Build the DI container with all registered services."""
    container = Container()
    container.register_instance(Container, container)

    # 1. Secrets (always available)
    secrets = EnvSecrets(overrides=env_overrides)
    container.register_instance(SecretsInterface, secrets)

    container.register_instance(ModuleConfig, ModuleConfig(module_args))

    # 2. Logger factory: --log flag takes precedence, then LOG_IMPL
    log_impl = impl_flags.get("log") or env_overrides.get("LOG_IMPL") or _GLOBAL_FLAGS["log"]
    logger_factory = LoggerFactory(default_impl=log_impl)
    container.register_factory(LoggerFactory, logger_factory)

    # 3. Lifecycle manager (always registered so any module can use it)
    lifecycle = LifecycleManager()
    lifecycle.set_logger(logger_factory.for_component("lifecycle"))
    container.register_instance(LifecycleManager, lifecycle)

    # 4. Health check server (for service/worker modules)
    health_server: HealthCheckServer | None = None
    if module_type in _SERVICE_TYPES:
        health_server = HealthCheckServer(port=health_port)
        lifecycle.set_health_server(health_server)
        container.register_instance(HealthCheckServer, health_server)

    # 5. Interface implementations: explicit flags, else the flag defaults
    selected = {
        name: impl_flags.get(name, default)
        for name, default in _GLOBAL_FLAGS.items()
        if name != "log"
    }
    for flag_name, impl_name in selected.items():
        if impl_name is None:
            continue
        impl_cls = resolve_implementation(flag_name, impl_name)
        instance = container.resolve(impl_cls)
        container.register_instance(resolve_interface_type(flag_name), instance)

        if health_server is not None and hasattr(instance, "health_check"):
            health_server.register_check(flag_name, instance.health_check)

    # 6. MetricsInterface is always available
    if not container.has(MetricsInterface):
        container.register_instance(MetricsInterface, NoopMetrics())

    return container


async def _run_service_module(module_instance: AsyncModule, container: Container) -> int:
    """Run a service/worker module with health check server and lifecycle management."""
    lifecycle = container.get(LifecycleManager)
    health_server = container.get(HealthCheckServer)

    await health_server.start()
    lifecycle.install_signal_handlers(loop=asyncio.get_running_loop())

    try:
        health_server.mark_started()
        exit_code = await module_instance.run()
    finally:
        await lifecycle.shutdown()

    return exit_code


def run_module(argv: list[str]) -> tuple[int, AsyncModule | None]:
    """Testable entry point: parses args, builds container, runs module, returns (exit_code, module)."""
    if len(argv) < 2 or argv[0] != "run":
        raise ValueError(USAGE)

    module_name = argv[1]
    remaining = argv[2:]

    descriptor = load_module_descriptor(module_name)

    if "--help" in remaining or "-h" in remaining:
        print_module_help(descriptor)
        return (0, None)

    module_type = descriptor.get("type", "job")

    impl_flags, env_overrides, filtered_args, health_port = _extract_global_flags(remaining)
    module_args = parse_module_args(descriptor, filtered_args)

    container = _build_container(
        impl_flags, env_overrides, module_args,
        health_port=health_port, module_type=module_type,
    )

    mod = importlib.import_module(f"line_relay.modules.{module_name}.main")
    if not hasattr(mod, "module_class"):
        raise AttributeError(
            f"Module 'line_relay.modules.{module_name}.main' must define a 'module_class' attribute"
        )

    module_instance = container.resolve(mod.module_class)

    if module_type in _SERVICE_TYPES:
        exit_code = asyncio.run(_run_service_module(module_instance, container))
    else:
        exit_code = asyncio.run(module_instance.run())

    return (exit_code, module_instance)


def run_cli(argv: list[str] | None = None) -> None:
    args = argv if argv is not None else sys.argv[1:]
    try:
        exit_code, _ = run_module(args)
        sys.exit(exit_code)
    except (ValueError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
