"""Resource models, an in-memory cluster store and helpers shared by the commands."""

from __future__ import annotations

import copy
import re
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, ClassVar, Iterable, Sequence, TextIO

import yaml

GROUP = "knative.projectriff.io"
API_VERSION = f"{GROUP}/v1alpha1"
READY = "Ready"
UNKNOWN = "<unknown>"
EMPTY = "<empty>"

_STR_TAG = "tag:yaml.org,2002:str"


def _format_time(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass
class Condition:
    """A status condition reported on a resource."""

    type: str
    status: str = ""
    reason: str = ""
    message: str = ""
    last_transition_time: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"type": self.type, "status": self.status}
        if self.reason:
            data["reason"] = self.reason
        if self.message:
            data["message"] = self.message
        if self.last_transition_time is not None:
            data["lastTransitionTime"] = _format_time(self.last_transition_time)
        return data


def _find_condition(conditions: Iterable[Condition], condition_type: str) -> Condition | None:
    return next((c for c in conditions if c.type == condition_type), None)


def _metadata(name: str, namespace: str, created: datetime | None) -> dict[str, Any]:
    data: dict[str, Any] = {
        "creationTimestamp": _format_time(created) if created else None,
    }
    if name:
        data["name"] = name
    if namespace:
        data["namespace"] = namespace
    return data


def _status(conditions: list[Condition], **extra: str) -> dict[str, Any]:
    data: dict[str, Any] = {}
    if conditions:
        data["conditions"] = [c.to_dict() for c in conditions]
    data.update({key: value for key, value in extra.items() if value})
    return data


@dataclass
class Build:
    """Reference to the build whose latest image is used."""

    application_ref: str = ""
    container_ref: str = ""
    function_ref: str = ""

    def to_dict(self) -> dict[str, str]:
        pairs = {
            "applicationRef": self.application_ref,
            "containerRef": self.container_ref,
            "functionRef": self.function_ref,
        }
        return {key: value for key, value in pairs.items() if value}


@dataclass
class AdapterTarget:
    """The Knative resource an adapter updates."""

    configuration_ref: str = ""
    service_ref: str = ""

    def to_dict(self) -> dict[str, str]:
        pairs = {
            "configurationRef": self.configuration_ref,
            "serviceRef": self.service_ref,
        }
        return {key: value for key, value in pairs.items() if value}


@dataclass
class Adapter:
    """Pushes images from a build to a Knative Service or Configuration."""

    KIND: ClassVar[str] = "Adapter"
    PLURAL: ClassVar[str] = "adapters"

    name: str
    namespace: str = ""
    build: Build = field(default_factory=Build)
    target: AdapterTarget = field(default_factory=AdapterTarget)
    conditions: list[Condition] = field(default_factory=list)
    creation_timestamp: datetime | None = None

    def get_condition(self, condition_type: str = READY) -> Condition | None:
        return _find_condition(self.conditions, condition_type)

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": API_VERSION,
            "kind": self.KIND,
            "metadata": _metadata(self.name, self.namespace, self.creation_timestamp),
            "spec": {"build": self.build.to_dict(), "target": self.target.to_dict()},
            "status": _status(self.conditions),
        }


@dataclass
class Container:
    """A container in a deployer's pod template."""

    image: str = ""
    name: str = ""

    def to_dict(self) -> dict[str, str]:
        data = {"image": self.image}
        if self.name:
            data["name"] = self.name
        return data


@dataclass
class Deployer:
    """Maps HTTP requests to a workload built from a build or an image."""

    KIND: ClassVar[str] = "Deployer"
    PLURAL: ClassVar[str] = "deployers"

    name: str
    namespace: str = ""
    build: Build | None = None
    containers: list[Container] | None = None
    url: str = ""
    conditions: list[Condition] = field(default_factory=list)
    creation_timestamp: datetime | None = None

    def get_condition(self, condition_type: str = READY) -> Condition | None:
        return _find_condition(self.conditions, condition_type)

    def to_dict(self) -> dict[str, Any]:
        spec: dict[str, Any] = {}
        if self.build is not None:
            spec["build"] = self.build.to_dict()
        if self.containers is not None:
            spec["template"] = {"containers": [c.to_dict() for c in self.containers]}
        return {
            "apiVersion": API_VERSION,
            "kind": self.KIND,
            "metadata": _metadata(self.name, self.namespace, self.creation_timestamp),
            "spec": spec,
            "status": _status(self.conditions, url=self.url),
        }


@dataclass(frozen=True)
class _Violation:
    message: str
    paths: tuple[str, ...]

    def __str__(self) -> str:
        return f"{self.message}: {', '.join(self.paths)}" if self.paths else self.message


class FieldError(Exception):
    """One or more problems with option values; empty when nothing is wrong."""

    def __init__(self, message: str | None = None, paths: Iterable[str] = ()) -> None:
        super().__init__()
        self.violations: tuple[_Violation, ...] = (
            (_Violation(message, tuple(paths)),) if message else ()
        )

    def also(self, *args: FieldError | None) -> FieldError:
        """Return a new error holding these problems followed by the given ones."""
        combined = FieldError()
        combined.violations = self.violations + tuple(
            violation for other in args if other for violation in other.violations
        )
        return combined

    def __bool__(self) -> bool:
        return bool(self.violations)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldError):
            return NotImplemented
        return self.violations == other.violations

    def __hash__(self) -> int:
        return hash(self.violations)

    def __str__(self) -> str:
        return "\n".join(str(v) for v in self.violations)

    def __repr__(self) -> str:
        return f"FieldError({list(self.violations)!r})"


def missing_one_of(*args: str) -> FieldError:
    return FieldError("expected exactly one, got neither", args)


def multiple_one_of(*args: str) -> FieldError:
    return FieldError("expected exactly one, got both", args)


def missing_field(name: str) -> FieldError:
    return FieldError("missing field(s)", (name,))


def invalid_value(value: object, name: str) -> FieldError:
    return FieldError(f"invalid value: {value}", (name,))


class NotFoundError(LookupError):
    """The requested resource does not exist."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f'{kind}.{GROUP} "{name}" not found')
        self.kind = kind
        self.name = name


class AlreadyExistsError(Exception):
    """A resource with that name already exists."""

    def __init__(self, kind: str, name: str) -> None:
        super().__init__(f'{kind}.{GROUP} "{name}" already exists')
        self.kind = kind
        self.name = name


class SilentError(Exception):
    """An error whose details were already reported to the user."""


_MICROSECONDS = {
    "ns": 0.001,
    "us": 1.0,
    "µs": 1.0,
    "μs": 1.0,
    "ms": 1_000.0,
    "s": 1_000_000.0,
    "m": 60_000_000.0,
    "h": 3_600_000_000.0,
}
_DURATION_PART = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def parse_duration(value: str) -> timedelta:
    """Parse a duration such as ``10m`` or ``1h30m``; raises ``ValueError``."""
    text = value
    negative = text.startswith("-")
    if text.startswith(("-", "+")):
        text = text[1:]
    if text == "0":
        return timedelta(0)
    if not text:
        raise ValueError(f"invalid duration {value!r}")
    total = 0.0
    position = 0
    while position < len(text):
        match = _DURATION_PART.match(text, position)
        if match is None:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _MICROSECONDS[match.group(2)]
        position = match.end()
    result = timedelta(microseconds=total)
    return -result if negative else result


def format_condition_status(condition: Condition | None) -> str:
    """Summarise a Ready condition for display."""
    if condition is None or not condition.status:
        return UNKNOWN
    if condition.status == "True":
        return READY
    if condition.status == "False":
        return condition.reason or "not-Ready"
    return condition.status


def _human_duration(delta: timedelta) -> str:
    seconds = int(delta.total_seconds())
    if seconds < -1:
        return "<invalid>"
    if seconds < 0:
        return "0s"
    if seconds < 60 * 2:
        return f"{seconds}s"
    minutes = seconds // 60
    if minutes < 10:
        rest = seconds % 60
        return f"{minutes}m" if rest == 0 else f"{minutes}m{rest}s"
    if minutes < 60 * 3:
        return f"{minutes}m"
    hours = minutes // 60
    if hours < 8:
        rest = minutes % 60
        return f"{hours}h" if rest == 0 else f"{hours}h{rest}m"
    if hours < 48:
        return f"{hours}h"
    days = hours // 24
    if hours < 24 * 8:
        rest = hours % 24
        return f"{days}d" if rest == 0 else f"{days}d{rest}h"
    if hours < 24 * 365 * 2:
        return f"{days}d"
    if hours < 24 * 365 * 8:
        return f"{days // 365}y{days % 365}d"
    return f"{days // 365}y"


def format_age(timestamp: datetime | None, now: datetime | None = None) -> str:
    """Describe how long ago ``timestamp`` was, relative to ``now``."""
    if timestamp is None:
        return UNKNOWN
    if now is None:
        now = datetime.now(timezone.utc)
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return _human_duration(now - timestamp)


def format_empty(value: str) -> str:
    return value if value else EMPTY


def render_table(columns: Sequence[str], rows: Iterable[Sequence[object]]) -> str:
    """Lay out a table with upper-case headers and three spaces between columns."""
    lines = [[c.upper() for c in columns], *([str(cell) for cell in row] for row in rows)]
    widths = [max(map(len, column)) for column in zip(*lines)][:-1]
    return "".join(
        "".join(cell.ljust(width + 3) for cell, width in zip(line, widths)) + line[-1] + "\n"
        for line in lines
    )


class _Dumper(yaml.SafeDumper):
    pass


def _represent_str(dumper: _Dumper, value: str) -> yaml.ScalarNode:
    style = None
    if dumper.resolve(yaml.ScalarNode, value, (True, False)) != _STR_TAG:
        style = '"'
    return dumper.represent_scalar(_STR_TAG, value, style=style)


_Dumper.add_representer(str, _represent_str)


def to_yaml(obj: Any) -> str:
    """Render a resource, condition or plain data as block-style YAML."""
    data = obj.to_dict() if hasattr(obj, "to_dict") else obj
    if data is None:
        return "null\n"
    return yaml.dump(
        data,
        Dumper=_Dumper,
        default_flow_style=False,
        sort_keys=True,
        allow_unicode=True,
        width=2**31,
    )


class Store:
    """An in-memory cluster holding resources by kind, namespace and name.

    ``failures`` holds ``(verb, kind)`` pairs for which every request fails.
    Every request is recorded in ``actions`` as ``(verb, kind, namespace, name)``.
    """

    def __init__(
        self,
        objects: Iterable[Any] = (),
        failures: Iterable[tuple[str, str]] = (),
    ) -> None:
        self._objects: dict[tuple[str, str, str], Any] = {
            (obj.PLURAL, obj.namespace, obj.name): copy.deepcopy(obj) for obj in objects
        }
        self.failures = set(failures)
        self.actions: list[tuple[str, str, str, str]] = []

    def _act(self, verb: str, kind: str, namespace: str, name: str = "") -> None:
        self.actions.append((verb, kind, namespace, name))
        if (verb, kind) in self.failures:
            raise RuntimeError(f"inducing failure for {verb} {kind}")

    def create(self, kind: str, obj: Any) -> Any:
        self._act("create", kind, obj.namespace, obj.name)
        key = (kind, obj.namespace, obj.name)
        if key in self._objects:
            raise AlreadyExistsError(kind, obj.name)
        self._objects[key] = copy.deepcopy(obj)
        return copy.deepcopy(obj)

    def get(self, kind: str, namespace: str, name: str) -> Any:
        self._act("get", kind, namespace, name)
        try:
            return copy.deepcopy(self._objects[(kind, namespace, name)])
        except KeyError:
            raise NotFoundError(kind, name) from None

    def list(self, kind: str, namespace: str | None = None) -> list[Any]:
        """List resources of a kind; an empty namespace means every namespace."""
        self._act("list", kind, namespace or "")
        return [
            copy.deepcopy(obj)
            for (obj_kind, obj_namespace, _), obj in self._objects.items()
            if obj_kind == kind and (not namespace or obj_namespace == namespace)
        ]

    def delete(self, kind: str, namespace: str, name: str) -> None:
        self._act("delete", kind, namespace, name)
        try:
            del self._objects[(kind, namespace, name)]
        except KeyError:
            raise NotFoundError(kind, name) from None

    def delete_collection(self, kind: str, namespace: str) -> None:
        self._act("delete-collection", kind, namespace)
        for key in [k for k in self._objects if k[0] == kind and k[1] == namespace]:
            del self._objects[key]


@dataclass
class Config:
    """What the commands share: the cluster, the default namespace and the output streams."""

    store: Store = field(default_factory=Store)
    name: str = "riff"
    namespace: str = "default"
    stdout: TextIO = field(default_factory=lambda: sys.stdout)
    stderr: TextIO = field(default_factory=lambda: sys.stderr)
    logs: Callable[..., None] | None = None

    def success(self, message: str) -> None:
        self.stdout.write(f"{message}\n")

    def info(self, message: str) -> None:
        self.stdout.write(f"{message}\n")

    def error(self, message: str) -> None:
        self.stderr.write(f"{message}\n")


def print_resource_status(config: Config, name: str, condition: Condition | None) -> None:
    """Write a status headline followed by the condition as YAML."""
    config.stdout.write(f"# {name}: {format_condition_status(condition)}\n")
    config.stdout.write("---\n")
    config.stdout.write(to_yaml(condition))