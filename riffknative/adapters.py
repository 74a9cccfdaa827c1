"""Commands that manage adapters, which push built images to Knative resources."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from . import race
from .resources import (
    Adapter,
    AdapterTarget,
    Build,
    Config,
    FieldError,
    NotFoundError,
    SilentError,
    Store,
    UNKNOWN,
    format_age,
    format_condition_status,
    invalid_value,
    missing_field,
    missing_one_of,
    multiple_one_of,
    parse_duration,
    print_resource_status,
    render_table,
    to_yaml,
)

KIND = Adapter.PLURAL

NAMESPACE_FLAG = "--namespace"
ALL_NAMESPACES_FLAG = "--all-namespaces"
ALL_FLAG = "--all"
APPLICATION_REF_FLAG = "--application-ref"
CONTAINER_REF_FLAG = "--container-ref"
FUNCTION_REF_FLAG = "--function-ref"
CONFIGURATION_REF_FLAG = "--configuration-ref"
SERVICE_REF_FLAG = "--service-ref"
TAIL_FLAG = "--tail"
WAIT_TIMEOUT_FLAG = "--wait-timeout"
DRY_RUN_FLAG = "--dry-run"
NAME_ARG = "<name>"
NAMES_ARG = "<name(s)>"

POLL_INTERVAL = 0.05

_NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")

LIST_COLUMNS = (
    "Name",
    "Build Type",
    "Build Ref",
    "Target Type",
    "Target Ref",
    "Status",
    "Age",
)


def _quote(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _name_errors(name: str, arg: str) -> FieldError:
    if not name:
        return missing_field(arg)
    if len(name) > 63 or not _NAME_PATTERN.match(name):
        return invalid_value(name, arg)
    return FieldError()


def _namespace_errors(namespace: str) -> FieldError:
    return FieldError() if namespace else missing_field(NAMESPACE_FLAG)


def _exactly_one(flags: dict[str, str]) -> FieldError:
    used = [flag for flag, value in flags.items() if value]
    unused = [flag for flag, value in flags.items() if not value]
    if not used:
        return missing_one_of(*unused)
    if len(used) > 1:
        return multiple_one_of(*used)
    return FieldError()


def _raise_if_any(errors: FieldError) -> None:
    if errors:
        raise errors


@dataclass
class AdapterCreateOptions:
    """Options for creating an adapter."""

    name: str = ""
    namespace: str = ""
    application_ref: str = ""
    container_ref: str = ""
    function_ref: str = ""
    configuration_ref: str = ""
    service_ref: str = ""
    tail: bool = False
    wait_timeout: str = ""
    dry_run: bool = False

    def _errors(self) -> FieldError:
        errors = _namespace_errors(self.namespace).also(_name_errors(self.name, NAME_ARG))
        errors = errors.also(
            _exactly_one(
                {
                    APPLICATION_REF_FLAG: self.application_ref,
                    CONTAINER_REF_FLAG: self.container_ref,
                    FUNCTION_REF_FLAG: self.function_ref,
                }
            ),
            _exactly_one(
                {
                    CONFIGURATION_REF_FLAG: self.configuration_ref,
                    SERVICE_REF_FLAG: self.service_ref,
                }
            ),
        )
        if self.tail:
            if not self.wait_timeout:
                errors = errors.also(missing_field(WAIT_TIMEOUT_FLAG))
            else:
                try:
                    parse_duration(self.wait_timeout)
                except ValueError:
                    errors = errors.also(invalid_value(self.wait_timeout, WAIT_TIMEOUT_FLAG))
        if self.dry_run and self.tail:
            errors = errors.also(multiple_one_of(DRY_RUN_FLAG, TAIL_FLAG))
        return errors

    def validate(self) -> None:
        """Raise ``FieldError`` listing every problem with these options."""
        _raise_if_any(self._errors())

    def _adapter(self) -> Adapter:
        build = Build()
        if self.application_ref:
            build = Build(application_ref=self.application_ref)
        if self.container_ref:
            build = Build(container_ref=self.container_ref)
        if self.function_ref:
            build = Build(function_ref=self.function_ref)
        target = AdapterTarget()
        if self.configuration_ref:
            target = AdapterTarget(configuration_ref=self.configuration_ref)
        if self.service_ref:
            target = AdapterTarget(service_ref=self.service_ref)
        return Adapter(name=self.name, namespace=self.namespace, build=build, target=target)

    def execute(self, config: Config) -> None:
        """Create the adapter, or print it when this is a dry run."""
        adapter = self._adapter()
        out = config
        if self.dry_run:
            config.stdout.write("---\n" + to_yaml(adapter) + "\n")
            out = dataclasses.replace(config, stdout=config.stderr)
        else:
            adapter = config.store.create(KIND, adapter)
        out.success(f"Created adapter {_quote(adapter.name)}")
        if not self.tail:
            return
        timeout = parse_duration(self.wait_timeout).total_seconds()
        try:
            asyncio.run(race.run(timeout, lambda: _wait_until_ready(config.store, adapter)))
        except TimeoutError as err:
            config.error(
                f"Timeout after {_quote(self.wait_timeout)} waiting for "
                f"{_quote(self.name)} to become ready"
            )
            config.info(
                f"To view status run: {config.name} knative adapter list "
                f"{NAMESPACE_FLAG} {self.namespace}"
            )
            raise SilentError(str(err)) from err
        out.success(f"Adapter {_quote(adapter.name)} is ready")


async def _wait_until_ready(store: Store, adapter: Adapter) -> None:
    while True:
        current = store.get(KIND, adapter.namespace, adapter.name)
        condition = current.get_condition()
        if condition is not None and condition.status == "True":
            return
        await asyncio.sleep(POLL_INTERVAL)


@dataclass
class AdapterDeleteOptions:
    """Options for deleting adapters by name or all within a namespace."""

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
            config.success(f"Deleted adapters in namespace {_quote(self.namespace)}")
            return
        for name in self.names:
            config.store.delete(KIND, self.namespace, name)
            config.success(f"Deleted adapter {_quote(name)}")


def format_build_ref(adapter: Adapter) -> tuple[str, str]:
    """Return the kind and name of the build an adapter watches."""
    build = adapter.build
    if build.application_ref:
        return "application", build.application_ref
    if build.function_ref:
        return "function", build.function_ref
    if build.container_ref:
        return "container", build.container_ref
    return UNKNOWN, UNKNOWN


def format_target_ref(adapter: Adapter) -> tuple[str, str]:
    """Return the kind and name of the Knative resource an adapter updates."""
    target = adapter.target
    if target.configuration_ref:
        return "configuration", target.configuration_ref
    if target.service_ref:
        return "service", target.service_ref
    return UNKNOWN, UNKNOWN


@dataclass
class AdapterListOptions:
    """Options for listing adapters in one namespace or all of them."""

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

    def _row(self, adapter: Adapter, now: datetime) -> list[str]:
        build_type, build_ref = format_build_ref(adapter)
        target_type, target_ref = format_target_ref(adapter)
        row = [
            adapter.name,
            build_type,
            build_ref,
            target_type,
            target_ref,
            format_condition_status(adapter.get_condition()),
            format_age(adapter.creation_timestamp, now),
        ]
        return [adapter.namespace, *row] if self.all_namespaces else row

    def execute(self, config: Config) -> None:
        namespace = None if self.all_namespaces else self.namespace
        adapters = config.store.list(KIND, namespace)
        if not adapters:
            config.info("No adapters found.")
            return
        adapters.sort(key=lambda a: (a.namespace, a.name))
        columns = ["Namespace", *LIST_COLUMNS] if self.all_namespaces else list(LIST_COLUMNS)
        now = datetime.now(timezone.utc)
        config.stdout.write(render_table(columns, (self._row(a, now) for a in adapters)))


@dataclass
class AdapterStatusOptions:
    """Options for showing the Ready condition of one adapter."""

    name: str = ""
    namespace: str = ""

    def validate(self) -> None:
        """Raise ``FieldError`` listing every problem with these options."""
        _raise_if_any(
            _namespace_errors(self.namespace).also(_name_errors(self.name, NAME_ARG))
        )

    def execute(self, config: Config) -> None:
        try:
            adapter = config.store.get(KIND, self.namespace, self.name)
        except NotFoundError as err:
            config.error(f"Adapter {_quote(f'{self.namespace}/{self.name}')} not found")
            raise SilentError(str(err)) from err
        print_resource_status(config, adapter.name, adapter.get_condition())


def _command(config: Config, build: Callable[[argparse.Namespace], Any]) -> Callable[[argparse.Namespace], None]:
    def command(args: argparse.Namespace) -> None:
        options = build(args)
        options.validate()
        options.execute(config)

    return command


def _add_namespace(parser: argparse.ArgumentParser, config: Config) -> None:
    parser.add_argument(
        NAMESPACE_FLAG, default=config.namespace, metavar="name", help="kubernetes namespace"
    )


def add_adapter_commands(subparsers: Any, config: Config) -> argparse.ArgumentParser:
    """Add the ``adapter`` command and its sub-commands; each leaf sets ``command``."""
    formatter = argparse.RawDescriptionHelpFormatter
    parser = subparsers.add_parser(
        "adapter",
        aliases=["adapters"],
        help="adapters push built images to Knative",
        formatter_class=formatter,
        description=(
            "The Knative runtime adapter updates a Knative Service or Configuration with the\n"
            "latest image from a riff build. As the build produces new images, they will be\n"
            "rolled out automatically to the target Knative resource.\n\n"
            "No new Knative resources are created directly by the adapter, it only updates\n"
            "the image for an existing resource."
        ),
    )
    parser.set_defaults(command=lambda args: parser.print_help(file=config.stdout))
    commands = parser.add_subparsers(title="commands")

    list_parser = commands.add_parser(
        "list",
        help="table listing of adapters",
        formatter_class=formatter,
        description=(
            "List adapters in a namespace or across all namespaces.\n\n"
            "For detail regarding the status of a single adapter, run:\n\n"
            f"    {config.name} knative adapter status <adapter-name>"
        ),
        epilog=(
            f"examples:\n  {config.name} knative adapter list\n"
            f"  {config.name} knative adapter list {ALL_NAMESPACES_FLAG}"
        ),
    )
    _add_namespace(list_parser, config)
    list_parser.add_argument(
        ALL_NAMESPACES_FLAG, action="store_true", help="use all kubernetes namespaces"
    )
    list_parser.set_defaults(
        command=_command(
            config,
            lambda a: AdapterListOptions(
                namespace="" if a.all_namespaces else a.namespace,
                all_namespaces=a.all_namespaces,
            ),
        )
    )

    create_parser = commands.add_parser(
        "create",
        help="create an adapter to Knative Serving",
        formatter_class=formatter,
        description=(
            "Create a new adapter by watching a build for the latest image, pushing those\n"
            "images to a target Knative Service or Configuration.\n\n"
            "No new Knative resources are created directly by the adapter, it only updates\n"
            "the image for an existing resource."
        ),
        epilog=(
            f"examples:\n  {config.name} knative adapter create my-adapter "
            f"{APPLICATION_REF_FLAG} my-app {SERVICE_REF_FLAG} my-kservice"
        ),
    )
    create_parser.add_argument("name", nargs="?", default="")
    _add_namespace(create_parser, config)
    create_parser.add_argument(APPLICATION_REF_FLAG, default="", metavar="name",
                               help="name of application to deploy")
    create_parser.add_argument(CONTAINER_REF_FLAG, default="", metavar="name",
                               help="name of container to deploy")
    create_parser.add_argument(FUNCTION_REF_FLAG, default="", metavar="name",
                               help="name of function to deploy")
    create_parser.add_argument(CONFIGURATION_REF_FLAG, default="", metavar="name",
                               help="name of Knative configuration to update")
    create_parser.add_argument(SERVICE_REF_FLAG, default="", metavar="name",
                               help="name of Knative service to update")
    create_parser.add_argument(TAIL_FLAG, action="store_true", help="watch adapter logs")
    create_parser.add_argument(
        WAIT_TIMEOUT_FLAG, default="10m", metavar="duration",
        help="duration to wait for the adapter to become ready when watching logs",
    )
    create_parser.add_argument(
        DRY_RUN_FLAG, action="store_true",
        help="print kubernetes resources to stdout rather than apply them to the cluster, "
             "messages normally on stdout will be sent to stderr",
    )
    create_parser.set_defaults(
        command=_command(
            config,
            lambda a: AdapterCreateOptions(
                name=a.name,
                namespace=a.namespace,
                application_ref=a.application_ref,
                container_ref=a.container_ref,
                function_ref=a.function_ref,
                configuration_ref=a.configuration_ref,
                service_ref=a.service_ref,
                tail=a.tail,
                wait_timeout=a.wait_timeout,
                dry_run=a.dry_run,
            ),
        )
    )

    delete_parser = commands.add_parser(
        "delete",
        help="delete adapter(s)",
        formatter_class=formatter,
        description="Delete one or more adapters by name or all adapters within a namespace.",
        epilog=(
            f"examples:\n  {config.name} knative adapter delete my-adapter\n"
            f"  {config.name} knative adapter delete {ALL_FLAG}"
        ),
    )
    delete_parser.add_argument("names", nargs="*", default=[])
    _add_namespace(delete_parser, config)
    delete_parser.add_argument(
        ALL_FLAG, action="store_true", help="delete all adapters within the namespace"
    )
    delete_parser.set_defaults(
        command=_command(
            config,
            lambda a: AdapterDeleteOptions(namespace=a.namespace, names=list(a.names), all=a.all),
        )
    )

    status_parser = commands.add_parser(
        "status",
        help="show knative adapter status",
        formatter_class=formatter,
        description=(
            "Display status details for a adapter.\n\n"
            "The Ready condition is shown which should include a reason code and a\n"
            'descriptive message when the status is not "True". The status for the condition\n'
            'may be: "True", "False" or "Unknown". An "Unknown" status is common while the\n'
            "adapter roll out is processed."
        ),
        epilog=f"examples:\n  {config.name} knative adapter status my-adapter",
    )
    status_parser.add_argument("name", nargs="?", default="")
    _add_namespace(status_parser, config)
    status_parser.set_defaults(
        command=_command(
            config, lambda a: AdapterStatusOptions(name=a.name, namespace=a.namespace)
        )
    )

    return parser