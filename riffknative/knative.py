"""The ``knative`` command: the Knative runtime for riff workloads."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from .adapters import add_adapter_commands
from .deployers import add_deployer_commands
from .resources import AlreadyExistsError, Config, FieldError, SilentError


def build_parser(config: Config) -> argparse.ArgumentParser:
    """Build the argument parser holding the adapter and deployer commands."""
    parser = argparse.ArgumentParser(
        prog=f"{config.name} knative",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description=(
            "The Knative runtime uses Knative Configuration and Route resources to deploy\n"
            "a workload. Knative provides both a zero-to-n autoscaler and managed ingress."
        ),
    )
    parser.set_defaults(command=lambda args: parser.print_help(file=config.stdout))
    subparsers = parser.add_subparsers(title="commands")
    add_adapter_commands(subparsers, config)
    add_deployer_commands(subparsers, config)
    return parser


def run(argv: Sequence[str] | None, config: Config) -> None:
    """Parse ``argv`` and run the chosen command; errors are raised."""
    if argv is None:
        argv = sys.argv[1:]
    args = build_parser(config).parse_args(list(argv))
    args.command(args)


def main(argv: Sequence[str] | None = None) -> int:
    """Run the command line and return the exit status."""
    config = Config()
    try:
        run(argv, config)
    except SilentError:
        return 1
    except FieldError as err:
        config.error(str(err))
        return 1
    except (LookupError, AlreadyExistsError, RuntimeError, TimeoutError) as err:
        config.error(f"Error: {err}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())