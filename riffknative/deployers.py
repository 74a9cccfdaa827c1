"""Commands that manage deployers, which map HTTP requests to a workload."""

from __future__ import annotations

import argparse
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from .adapters import (
    ALL_FLAG,
    ALL_NAMESPACES_FLAG,
    NAME_ARG,
    NAMES_ARG,
    NAMESPACE_FLAG,
    _add_namespace,
    _command,
    _name_errors,
    _namespace_errors,
    _quote,
    _raise_if_any,
)
from .resources import (
    UNKNOWN,
    Config,
    Deployer,
    FieldError,
    NotFoundError,
    SilentError,
    format_age,
    format_condition_status,
    format_empty,
    invalid_value,
    missing_one_of,
    multiple_one_of,
    parse_duration,
    print_resource_status,
    render_table,
)

KIND = Deployer.PLURAL

SINCE_FLAG = "--since"
TAIL_SINCE_DEFAULT = timedelta(seconds=1)

LIST_COLUMNS = ("Name", "Type", "Ref", "Host", "Status", "Age")


def _resource_errors(name: str, namespace: str) -> FieldError:
    return _namespace_errors(namespace).also(_name_errors(name, NAME_ARG))


@dataclass
class DeployerDeleteOptions:
    """Options for deleting deployers by name or all within a namespace."""

    namespace: str = ""
    names: list[str] = field(default_factory=list)
    all: bool = False

    def _errors(self) -> FieldError:
        errors = _namespace_errors(self.namespace)
        if self.all and self.names:
            errors = errors.also(multiple_one_of(ALL_FLAG, NAMES_ARG))
        elif not self.all and not self.names:
            errors = errors.also(missing_one_of(ALL_FLAG, NAMES_ARG))
        return errors.also(*(_name_errors(name, NAMES_ARG) for name in self.names))

    def validate(self) -> None:
        """Raise ``FieldError`` listing every problem with these options."""
        _raise_if_any(self._errors())

    def execute(self, config: Config) -> None:
        if self.all:
            config.store.delete_collection(KIND, self.namespace)
            config.success(f"Deleted deployers in namespace {_quote(self.namespace)}")
            return
        for name in self.names:
            config.store.delete(KIND, self.namespace, name)
            config.success(f"Deleted deployer {_quote(name)}")


def format_ref(deployer: Deployer) -> tuple[str, str]:
    """Return the kind and value of what a deployer runs: a build or an image."""
    build = deployer.build
    if build is not None:
        if build.application_ref:
            return "application", build.application_ref
        if build.function_ref:
            return "function", build.function_ref
        if build.container_ref:
            return "container", build.container_ref
    elif deployer.containers and deployer.containers[0].image:
        return "image", deployer.containers[0].image
    return UNKNOWN, UNKNOWN


@dataclass
class DeployerListOptions:
    """Options for listing deployers in one namespace or all of them."""

    namespace: str = ""
    all_namespaces: bool = False

    def _errors(self) -> FieldError:
        if self.namespace and self.all_namespaces:
            return multiple_one_of(NAMESPACE_FLAG, ALL_NAMESPACES_FLAG)
        if not self.namespace and not self.all_namespaces:
            return missing_one_of(NAMESPACE_FLAG, ALL_NAMESPACES_FLAG)
        return FieldError()

    def validate(self) -> None:
        """Raise ``FieldError`` listing every problem with these options."""
        _raise_if_any(self._errors())

    def _row(self, deployer: Deployer, now: datetime) -> list[str]:
        ref_type, ref_value = format_ref(deployer)
        row = [
            deployer.name,
            ref_type,
            ref_value,
            format_empty(deployer.url),
            format_condition_status(deployer.get_condition()),
            format_age(deployer.creation_timestamp, now),
        ]
        return [deployer.namespace, *row] if self.all_namespaces else row

    def execute(self, config: Config) -> None:
        namespace = None if self.all_namespaces else self.namespace
        deployers = config.store.list(KIND, namespace)
        if not deployers:
            config.info("No deployers found.")
            return
        deployers.sort(key=lambda d: (d.namespace, d.name))
        columns = ["Namespace", *LIST_COLUMNS] if self.all_namespaces else list(LIST_COLUMNS)
        now = datetime.now(timezone.utc)
        config.stdout.write(render_table(columns, (self._row(d, now) for d in deployers)))


@dataclass
class DeployerStatusOptions:
    """Options for showing the Ready condition of one deployer."""

    name: str = ""
    namespace: str = ""

    def validate(self) -> None:
        """Raise ``FieldError`` listing every problem with these options."""
        _raise_if_any(_resource_errors(self.name, self.namespace))

    def execute(self, config: Config) -> None:
        try:
            deployer = config.store.get(KIND, self.namespace, self.name)
        except NotFoundError as err:
            config.error(f"Deployer {_quote(f'{self.namespace}/{self.name}')} not found")
            raise SilentError(str(err)) from err
        print_resource_status(config, deployer.name, deployer.get_condition())


@dataclass
class DeployerTailOptions:
    """Options for streaming the logs of one deployer."""

    name: str = ""
    namespace: str = ""
    since: str = ""

    def _errors(self) -> FieldError:
        errors = _resource_errors(self.name, self.namespace)
        if self.since:
            try:
                parse_duration(self.since)
            except ValueError:
                errors = errors.also(invalid_value(self.since, SINCE_FLAG))
        return errors

    def validate(self) -> None:
        """Raise ``FieldError`` listing every problem with these options."""
        _raise_if_any(self._errors())

    def execute(self, config: Config) -> None:
        """Stream the deployer's logs through the configured log source."""
        deployer = config.store.get(KIND, self.namespace, self.name)
        since = parse_duration(self.since) if self.since else TAIL_SINCE_DEFAULT
        if config.logs is None:
            raise RuntimeError("no log source configured")
        config.logs(deployer, since, config.stdout)


def add_deployer_commands(subparsers: Any, config: Config) -> argparse.ArgumentParser:
    """Add the ``deployer`` command and its sub-commands; each leaf sets ``command``."""
    formatter = argparse.RawDescriptionHelpFormatter
    parser = subparsers.add_parser(
        "deployer",
        aliases=["deployers"],
        help="deployers map HTTP requests to a workload",
        formatter_class=formatter,
        description=(
            "Deployers can be created for a build reference or image. Build based deployers\n"
            "continuously watch for the latest built image and will deploy new images. If the\n"
            "underlying build resource is deleted, the deployer will continue to run, but will\n"
            "no longer self update. Image based deployers must be manually updated to trigger\n"
            "roll out of an updated image.\n\n"
            "Users wishing to perform checks on built images before deploying them can\n"
            "provide their own external process to watch the build resource for new images\n"
            "and only update the deployer image once those checks pass.\n\n"
            "The hostname to access the deployer is available in the deployer listing."
        ),
    )
    parser.set_defaults(command=lambda args: parser.print_help(file=config.stdout))
    commands = parser.add_subparsers(title="commands")

    list_parser = commands.add_parser(
        "list",
        help="table listing of deployers",
        formatter_class=formatter,
        description=(
            "List deployers in a namespace or across all namespaces.\n\n"
            "For detail regarding the status of a single deployer, run:\n\n"
            f"    {config.name} knative deployer status <deployer-name>"
        ),
        epilog=(
            f"examples:\n  {config.name} knative deployer list\n"
            f"  {config.name} knative deployer list {ALL_NAMESPACES_FLAG}"
        ),
    )
    _add_namespace(list_parser, config)
    list_parser.add_argument(
        ALL_NAMESPACES_FLAG, action="store_true", help="use all kubernetes namespaces"
    )
    list_parser.set_defaults(
        command=_command(
            config,
            lambda a: DeployerListOptions(
                namespace="" if a.all_namespaces else a.namespace,
                all_namespaces=a.all_namespaces,
            ),
        )
    )

    delete_parser = commands.add_parser(
        "delete",
        help="delete deployer(s)",
        formatter_class=formatter,
        description=(
            "Delete one or more deployers by name or all deployers within a namespace.\n\n"
            "New HTTP requests addressed to the deployer will fail. A new deployer created with\n"
            "the same name will start to receive new HTTP requests addressed to the same\n"
            "deployer."
        ),
        epilog=(
            f"examples:\n  {config.name} knative deployer delete my-deployer\n"
            f"  {config.name} knative deployer delete {ALL_FLAG}"
        ),
    )
    delete_parser.add_argument("names", nargs="*", default=[])
    _add_namespace(delete_parser, config)
    delete_parser.add_argument(
        ALL_FLAG, action="store_true", help="delete all deployers within the namespace"
    )
    delete_parser.set_defaults(
        command=_command(
            config,
            lambda a: DeployerDeleteOptions(
                namespace=a.namespace, names=list(a.names), all=a.all
            ),
        )
    )

    status_parser = commands.add_parser(
        "status",
        help="show knative deployer status",
        formatter_class=formatter,
        description=(
            "Display status details for a deployer.\n\n"
            "The Ready condition is shown which should include a reason code and a\n"
            'descriptive message when the status is not "True". The status for the condition\n'
            'may be: "True", "False" or "Unknown". An "Unknown" status is common while the\n'
            "deployer roll out is processed."
        ),
        epilog=f"examples:\n  {config.name} knative deployer status my-deployer",
    )
    status_parser.add_argument("name", nargs="?", default="")
    _add_namespace(status_parser, config)
    status_parser.set_defaults(
        command=_command(
            config, lambda a: DeployerStatusOptions(name=a.name, namespace=a.namespace)
        )
    )

    tail_parser = commands.add_parser(
        "tail",
        help="watch deployer logs",
        formatter_class=formatter,
        description=(
            "Stream runtime logs for a deployer until canceled. To cancel, press Ctl-c in the\n"
            "shell or kill the process.\n\n"
            "As new deployer pods are started, the logs are displayed. To show historical logs\n"
            f"use {SINCE_FLAG}."
        ),
        epilog=(
            f"examples:\n  {config.name} knative deployer tail my-deployer\n"
            f"  {config.name} knative deployer tail my-deployer {SINCE_FLAG} 1h"
        ),
    )
    tail_parser.add_argument("name", nargs="?", default="")
    _add_namespace(tail_parser, config)
    tail_parser.add_argument(
        SINCE_FLAG, default="", metavar="duration",
        help="time duration to start reading logs from",
    )
    tail_parser.set_defaults(
        command=_command(
            config,
            lambda a: DeployerTailOptions(name=a.name, namespace=a.namespace, since=a.since),
        )
    )

    return parser