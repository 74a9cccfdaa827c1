# riffknative

Commands for the Knative runtime of riff workloads. They manage two kinds of
resources:

- **adapters** (`riffknative.resources.Adapter`) take the latest image from a
  build (an application, function or container reference) and point it at an
  existing Knative Service or Configuration.
- **deployers** (`riffknative.resources.Deployer`) map HTTP requests to a
  workload, given either a build reference or a container image.

The commands work against a `riffknative.resources.Store`, an in-memory
collection of resources keyed by kind, namespace and name.

## Installation

```
pip install .
```

## Commands

```
riff-knative adapter create <name> (--application-ref | --container-ref | --function-ref) NAME
                                   (--configuration-ref | --service-ref) NAME
                                   [--namespace NAME] [--tail] [--wait-timeout DURATION] [--dry-run]
riff-knative adapter list   [--namespace NAME | --all-namespaces]
riff-knative adapter status <name> [--namespace NAME]
riff-knative adapter delete <name>... | --all [--namespace NAME]

riff-knative deployer list   [--namespace NAME | --all-namespaces]
riff-knative deployer status <name> [--namespace NAME]
riff-knative deployer tail   <name> [--namespace NAME] [--since DURATION]
riff-knative deployer delete <name>... | --all [--namespace NAME]
```

`adapters` and `deployers` are accepted as aliases. The namespace defaults to
`default`. Durations are written like `10m`, `1h30m` or `500ms`.

- `adapter create` needs exactly one of `--application-ref`,
  `--container-ref` and `--function-ref`, and exactly one of
  `--configuration-ref` and `--service-ref`. With `--dry-run` the adapter is
  printed as YAML on standard output, is not stored, and the confirmation
  goes to standard error. With `--tail` the command waits, for at most
  `--wait-timeout` (default `10m`), until the stored adapter has a `Ready`
  condition of `True`. `--dry-run` and `--tail` cannot be combined.
- `list` prints a table sorted by namespace and name, or
  `No adapters found.` / `No deployers found.`. The deployer table shows the
  type and reference (`application`, `function`, `container` or `image`), the
  host and the ready status.
- `status` prints `# <name>: <status>` followed by the `Ready` condition as
  YAML.
- `deployer tail` hands the deployer, the `--since` duration (one second by
  default) and standard output to the configured log source.
- Names must be lower-case DNS labels of at most 63 characters.

The `riff-knative` command returns exit status 1 on any error. Validation
problems are listed on standard error; other errors are printed as
`Error: <message>`.

## Using it as a library

`riffknative.knative.run(argv, config)` parses the arguments and runs the
command against a `Config`, raising on error instead of returning a status:

```python
import io

from riffknative.knative import run
from riffknative.resources import Config, Store

out = io.StringIO()
config = Config(store=Store(), stdout=out)
run(["adapter", "create", "my-adapter",
     "--application-ref", "my-app", "--service-ref", "my-kservice"], config)
run(["adapter", "list"], config)
print(out.getvalue())
```

`Config` holds the `store`, the command name used in messages (`name`), the
default `namespace`, the `stdout` and `stderr` streams, and `logs`, the
callable used by `deployer tail`.

The option classes can be used directly: `AdapterCreateOptions`,
`AdapterDeleteOptions`, `AdapterListOptions` and `AdapterStatusOptions` in
`riffknative.adapters`, and `DeployerDeleteOptions`, `DeployerListOptions`,
`DeployerStatusOptions` and `DeployerTailOptions` in `riffknative.deployers`.
Each has `validate()`, which raises a `FieldError` listing every problem, and
`execute(config)`.

Errors raised:

- `FieldError` for invalid options; `missing_one_of`, `multiple_one_of`,
  `missing_field` and `invalid_value` build them and `also` combines them.
- `NotFoundError` and `AlreadyExistsError` from the `Store`.
- `SilentError` once a message has already been written, as when `status`
  cannot find the resource or `adapter create --tail` times out.

`Store` records each request in `actions` as `(verb, kind, namespace, name)`,
and every request for a `(verb, kind)` pair listed in `failures` raises
`RuntimeError`.

`riffknative.race.run(timeout, *tasks)` is a coroutine that starts the given
coroutine functions together and settles on the first to finish: it returns
`None` or re-raises that task's exception, raises `TimeoutError` when none
finishes within `timeout` seconds, and cancels the rest.

## What it does not do

- It does not talk to a Kubernetes cluster. The `riff-knative` command starts
  each run with a new, empty in-memory `Store`, so nothing persists between
  runs: `list` reports no resources and `status`, `tail` and `delete` of a
  named resource report that it is not found. Resources only live as long as
  the `Store` a program passes in through `Config`.
- There is no command to create a deployer; deployers must be placed in the
  `Store` by the calling program.
- `deployer tail` has no log source of its own. The command line leaves
  `Config.logs` unset, and `execute` raises `RuntimeError` when it is unset.
- `adapter create --tail` does not stream logs; it only polls the `Store`
  until the adapter is ready or the timeout passes.

## Tests

```
pip install .[test]
pytest
```