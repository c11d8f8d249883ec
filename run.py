import json
import os
import sys
from typing import Dict, List, Optional, Tuple
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from challengers.auth.vault import generate_key
from challengers.config import ConfigurationError, reload_config
from challengers.logger import configure_logging, log


def _parse_cli_args(extra_args: List[str]) -> Tuple[Dict[str, object], List[str]]:
    """Parse CLI-style ``--key value`` pairs and return remaining positional args."""

    cli_params: Dict[str, object] = {}
    residual: List[str] = []

    i = 0
    while i < len(extra_args):
        token = extra_args[i]
        if token.startswith("--") and len(token) > 2:
            key = token[2:].strip().replace("-", "_")
            value: object = True
            if i + 1 < len(extra_args) and not extra_args[i + 1].startswith("--"):
                value = extra_args[i + 1]
                i += 2
            else:
                i += 1
            cli_params[key] = value
        else:
            residual.append(token)
            i += 1

    return cli_params, residual


def _int_option(cli_params: Dict[str, object], name: str) -> Optional[int]:
    raw = cli_params.get(name)
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValueError(f"--{name.replace('_', '-')} flag requires a value.")
    try:
        value = int(str(raw))
    except ValueError as exc:
        raise ValueError(f"--{name.replace('_', '-')} must be an integer.") from exc
    if value < 0:
        raise ValueError(f"--{name.replace('_', '-')} must not be negative.")
    return value


def _print_usage() -> None:
    usage = (
        "Usage:\n"
        "  python run.py process [--grace-minutes N] [--limit N]\n"
        "  python run.py generate-key\n"
    )
    print(usage.strip())


def _process(cli_params: Dict[str, object]) -> int:
    from challengers.core.executor import process_scheduled_challenges

    grace_minutes = _int_option(cli_params, "grace_minutes")
    limit = _int_option(cli_params, "limit")

    log("[scheduler] processing due challenges", grace_minutes=grace_minutes, limit=limit)
    summary = process_scheduled_challenges(grace_period_minutes=grace_minutes, limit=limit or None)
    print(json.dumps(summary.to_dict(), indent=2, default=str))
    return 0 if summary.failed == 0 else 3


def main(argv: list[str] | None = None):
    args = argv if argv is not None else sys.argv[1:]
    if not args:
        _print_usage()
        return 1

    command, extra_args = args[0], args[1:]
    cli_params, residual_args = _parse_cli_args(extra_args)
    if residual_args:
        print(f"[scheduler error] Unexpected arguments: {' '.join(residual_args)}", file=sys.stderr)
        _print_usage()
        return 1

    if command == "generate-key":
        print(generate_key())
        return 0

    if command != "process":
        print(f"[scheduler error] Unknown command '{command}'.", file=sys.stderr)
        _print_usage()
        return 1

    reload_config()
    configure_logging()
    try:
        return _process(cli_params)
    except ValueError as exc:
        print(f"[scheduler error] {exc}", file=sys.stderr)
        return 1
    except ConfigurationError as exc:
        print(f"[scheduler error] Configuration: {exc}", file=sys.stderr)
        return 2
    except Exception as exc:
        print(f"[scheduler error] {type(exc).__name__}: {exc}", file=sys.stderr)
        return 2

if __name__ == "__main__":
    sys.exit(main())
