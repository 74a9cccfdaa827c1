import argparse
import io
from datetime import datetime, timezone

import pytest

from riffknative.adapters import (
    ALL_FLAG,
    ALL_NAMESPACES_FLAG,
    APPLICATION_REF_FLAG,
    CONFIGURATION_REF_FLAG,
    CONTAINER_REF_FLAG,
    DRY_RUN_FLAG,
    FUNCTION_REF_FLAG,
    NAME_ARG,
    NAMES_ARG,
    NAMESPACE_FLAG,
    SERVICE_REF_FLAG,
    TAIL_FLAG,
    WAIT_TIMEOUT_FLAG,
    AdapterCreateOptions,
    AdapterDeleteOptions,
    AdapterListOptions,
    AdapterStatusOptions,
    add_adapter_commands,
    format_build_ref,
    format_target_ref,
)
from riffknative.resources import (
    Adapter,
    AdapterTarget,
    AlreadyExistsError,
    Build,
    Condition,
    Config,
    FieldError,
    NotFoundError,
    SilentError,
    Store,
    invalid_value,
    missing_field,
    missing_one_of,
    multiple_one_of,
)

DEFAULT = "default"
OTHER = "other-namespace"


def make_config(store=None, namespace=DEFAULT):
    return Config(
        store=store if store is not None else Store(),
        namespace=namespace,
        stdout=io.StringIO(),
        stderr=io.StringIO(),
    )


def run_cli(config, *argv):
    parser = argparse.ArgumentParser(prog="riff knative")
    add_adapter_commands(parser.add_subparsers(), config)
    args = parser.parse_args(["adapter", *argv])
    args.command(args)


def failing_condition():
    return Condition(
        type="Ready",
        status="False",
        reason="OopsieDoodle",
        message="a hopefully informative message about what went wrong",
        last_transition_time=datetime(2019, 6, 29, 1, 44, 5, tzinfo=timezone.utc),
    )


# create options


@pytest.mark.parametrize(
    "options, expected",
    [
        (
            AdapterCreateOptions(),
            missing_field(NAMESPACE_FLAG).also(
                missing_field(NAME_ARG),
                missing_one_of(APPLICATION_REF_FLAG, CONTAINER_REF_FLAG, FUNCTION_REF_FLAG),
                missing_one_of(CONFIGURATION_REF_FLAG, SERVICE_REF_FLAG),
            ),
        ),
        (
            AdapterCreateOptions(
                name="my-adapter", namespace=DEFAULT, application_ref="my-application",
                container_ref="my-container", function_ref="my-function", service_ref="my-service",
            ),
            multiple_one_of(APPLICATION_REF_FLAG, CONTAINER_REF_FLAG, FUNCTION_REF_FLAG),
        ),
        (
            AdapterCreateOptions(
                name="my-adapter", namespace=DEFAULT, application_ref="my-application",
                configuration_ref="my-configuration", service_ref="my-service",
            ),
            multiple_one_of(CONFIGURATION_REF_FLAG, SERVICE_REF_FLAG),
        ),
        (
            AdapterCreateOptions(
                name="my-adapter", namespace=DEFAULT, application_ref="my-application",
                service_ref="my-service", tail=True,
            ),
            missing_field(WAIT_TIMEOUT_FLAG),
        ),
        (
            AdapterCreateOptions(
                name="my-adapter", namespace=DEFAULT, application_ref="my-application",
                service_ref="my-service", tail=True, wait_timeout="d",
            ),
            invalid_value("d", WAIT_TIMEOUT_FLAG),
        ),
        (
            AdapterCreateOptions(
                name="my-adapter", namespace=DEFAULT, application_ref="my-application",
                service_ref="my-service", tail=True, wait_timeout="10m", dry_run=True,
            ),
            multiple_one_of(DRY_RUN_FLAG, TAIL_FLAG),
        ),
    ],
)
def test_create_options_invalid(options, expected):
    with pytest.raises(FieldError) as info:
        options.validate()
    assert info.value == expected


@pytest.mark.parametrize(
    "refs, build, target",
    [
        ({"application_ref": "my-application", "service_ref": "my-service"},
         Build(application_ref="my-application"), AdapterTarget(service_ref="my-service")),
        ({"container_ref": "my-container", "service_ref": "my-service"},
         Build(container_ref="my-container"), AdapterTarget(service_ref="my-service")),
        ({"function_ref": "my-function", "service_ref": "my-service"},
         Build(function_ref="my-function"), AdapterTarget(service_ref="my-service")),
        ({"application_ref": "my-application", "configuration_ref": "my-configuration"},
         Build(application_ref="my-application"),
         AdapterTarget(configuration_ref="my-configuration")),
    ],
)
def test_create_options_valid(refs, build, target):
    options = AdapterCreateOptions(name="my-adapter", namespace=DEFAULT, **refs)
    config = make_config()
    options.validate()
    options.execute(config)
    created = config.store.get("adapters", DEFAULT, "my-adapter")
    assert created.build == build
    assert created.target == target


def test_create_options_dry_run_valid():
    options = AdapterCreateOptions(
        name="my-adapter", namespace=DEFAULT, application_ref="my-application",
        service_ref="my-service", dry_run=True,
    )
    config = make_config()
    options.validate()
    options.execute(config)
    assert config.store.list("adapters", DEFAULT) == []
    assert "applicationRef: my-application" in config.stdout.getvalue()


# create command


def test_create_invalid_args():
    with pytest.raises(FieldError):
        run_cli(make_config(), "create")


@pytest.mark.parametrize(
    "argv, build, target",
    [
        ([APPLICATION_REF_FLAG, "my-app", SERVICE_REF_FLAG, "my-service"],
         Build(application_ref="my-app"), AdapterTarget(service_ref="my-service")),
        ([CONTAINER_REF_FLAG, "my-container", SERVICE_REF_FLAG, "my-service"],
         Build(container_ref="my-container"), AdapterTarget(service_ref="my-service")),
        ([FUNCTION_REF_FLAG, "my-func", SERVICE_REF_FLAG, "my-service"],
         Build(function_ref="my-func"), AdapterTarget(service_ref="my-service")),
        ([FUNCTION_REF_FLAG, "my-func", CONFIGURATION_REF_FLAG, "my-config"],
         Build(function_ref="my-func"), AdapterTarget(configuration_ref="my-config")),
    ],
)
def test_create_command(argv, build, target):
    config = make_config()
    run_cli(config, "create", "my-adapter", *argv)
    created = config.store.get("adapters", DEFAULT, "my-adapter")
    assert created.namespace == DEFAULT
    assert created.build == build
    assert created.target == target
    assert config.stdout.getvalue() == 'Created adapter "my-adapter"\n'
    assert ("create", "adapters", DEFAULT, "my-adapter") in config.store.actions


def test_create_dry_run():
    config = make_config()
    run_cli(config, "create", "my-adapter", FUNCTION_REF_FLAG, "my-func",
            SERVICE_REF_FLAG, "my-service", DRY_RUN_FLAG)
    assert config.stdout.getvalue() == (
        "---\n"
        "apiVersion: knative.projectriff.io/v1alpha1\n"
        "kind: Adapter\n"
        "metadata:\n"
        "  creationTimestamp: null\n"
        "  name: my-adapter\n"
        "  namespace: default\n"
        "spec:\n"
        "  build:\n"
        "    functionRef: my-func\n"
        "  target:\n"
        "    serviceRef: my-service\n"
        "status: {}\n"
        "\n"
    )
    assert config.stderr.getvalue() == 'Created adapter "my-adapter"\n'
    assert not any(action[0] == "create" for action in config.store.actions)


def test_create_existing_adapter():
    config = make_config(Store([Adapter(name="my-adapter", namespace=DEFAULT)]))
    with pytest.raises(AlreadyExistsError):
        run_cli(config, "create", "my-adapter", FUNCTION_REF_FLAG, "my-func",
                SERVICE_REF_FLAG, "my-service")
    assert config.store.actions[0] == ("create", "adapters", DEFAULT, "my-adapter")
    assert config.stdout.getvalue() == ""


def test_create_error():
    config = make_config(Store(failures=[("create", "adapters")]))
    with pytest.raises(RuntimeError):
        run_cli(config, "create", "my-adapter", FUNCTION_REF_FLAG, "my-func",
                SERVICE_REF_FLAG, "my-service")
    assert config.store.actions[0] == ("create", "adapters", DEFAULT, "my-adapter")


def test_create_tail_timeout():
    config = make_config()
    with pytest.raises(SilentError):
        run_cli(config, "create", "my-adapter", FUNCTION_REF_FLAG, "my-func",
                SERVICE_REF_FLAG, "my-service", TAIL_FLAG, WAIT_TIMEOUT_FLAG, "5ms")
    assert config.stdout.getvalue() == (
        'Created adapter "my-adapter"\n'
        "To view status run: riff knative adapter list --namespace default\n"
    )
    assert config.stderr.getvalue() == (
        'Timeout after "5ms" waiting for "my-adapter" to become ready\n'
    )


# delete


def test_delete_options_invalid():
    with pytest.raises(FieldError) as info:
        AdapterDeleteOptions().validate()
    assert info.value == missing_field(NAMESPACE_FLAG).also(missing_one_of(ALL_FLAG, NAMES_ARG))


def test_delete_options_valid():
    config = make_config(Store([Adapter(name="my-adapter", namespace=DEFAULT)]))
    options = AdapterDeleteOptions(namespace=DEFAULT, names=["my-adapter"])
    options.validate()
    options.execute(config)
    assert config.store.list("adapters", DEFAULT) == []
    assert config.stdout.getvalue() == 'Deleted adapter "my-adapter"\n'


def test_delete_invalid_args():
    with pytest.raises(FieldError):
        run_cli(make_config(), "delete")


def test_delete_all():
    config = make_config(Store([Adapter(name="test-adapter", namespace=DEFAULT)]))
    run_cli(config, "delete", ALL_FLAG)
    assert ("delete-collection", "adapters", DEFAULT, "") in config.store.actions
    assert config.stdout.getvalue() == 'Deleted adapters in namespace "default"\n'


def test_delete_all_error():
    config = make_config(Store([Adapter(name="test-adapter", namespace=DEFAULT)],
                               failures=[("delete-collection", "adapters")]))
    with pytest.raises(RuntimeError):
        run_cli(config, "delete", ALL_FLAG)
    assert config.store.actions == [("delete-collection", "adapters", DEFAULT, "")]


def test_delete_one():
    config = make_config(Store([Adapter(name="test-adapter", namespace=DEFAULT)]))
    run_cli(config, "delete", "test-adapter")
    assert config.store.actions == [("delete", "adapters", DEFAULT, "test-adapter")]
    assert config.stdout.getvalue() == 'Deleted adapter "test-adapter"\n'


def test_delete_many():
    config = make_config(Store([
        Adapter(name="test-adapter", namespace=DEFAULT),
        Adapter(name="test-other-adapter", namespace=DEFAULT),
    ]))
    run_cli(config, "delete", "test-adapter", "test-other-adapter")
    assert config.store.actions == [
        ("delete", "adapters", DEFAULT, "test-adapter"),
        ("delete", "adapters", DEFAULT, "test-other-adapter"),
    ]
    assert config.stdout.getvalue() == (
        'Deleted adapter "test-adapter"\nDeleted adapter "test-other-adapter"\n'
    )


def test_delete_missing():
    config = make_config()
    with pytest.raises(NotFoundError):
        run_cli(config, "delete", "test-adapter")
    assert config.store.actions == [("delete", "adapters", DEFAULT, "test-adapter")]


def test_delete_error():
    config = make_config(Store([Adapter(name="test-adapter", namespace=DEFAULT)],
                               failures=[("delete", "adapters")]))
    with pytest.raises(RuntimeError):
        run_cli(config, "delete", "test-adapter")
    assert config.store.actions == [("delete", "adapters", DEFAULT, "test-adapter")]


# list


def test_list_options_invalid():
    with pytest.raises(FieldError) as info:
        AdapterListOptions().validate()
    assert info.value == missing_one_of(NAMESPACE_FLAG, ALL_NAMESPACES_FLAG)


def test_list_options_valid():
    config = make_config()
    options = AdapterListOptions(namespace=DEFAULT)
    options.validate()
    options.execute(config)
    assert config.stdout.getvalue() == "No adapters found.\n"


def test_list_invalid_args():
    with pytest.raises(FieldError):
        run_cli(make_config(namespace=""), "list")


def test_list_empty():
    config = make_config()
    run_cli(config, "list")
    assert config.stdout.getvalue() == "No adapters found.\n"


def test_list_item():
    config = make_config(Store([Adapter(name="test-adapter", namespace=DEFAULT)]))
    run_cli(config, "list")
    assert config.stdout.getvalue() == (
        "NAME           BUILD TYPE   BUILD REF   TARGET TYPE   TARGET REF   STATUS      AGE\n"
        "test-adapter   <unknown>    <unknown>   <unknown>     <unknown>    <unknown>   <unknown>\n"
    )


def test_list_filters_by_namespace():
    config = make_config(Store([Adapter(name="test-adapter", namespace=DEFAULT)]))
    run_cli(config, "list", NAMESPACE_FLAG, OTHER)
    assert config.stdout.getvalue() == "No adapters found.\n"


def test_list_all_namespaces():
    config = make_config(Store([
        Adapter(name="test-adapter", namespace=DEFAULT),
        Adapter(name="test-other-adapter", namespace=OTHER),
    ]))
    run_cli(config, "list", ALL_NAMESPACES_FLAG)
    assert config.stdout.getvalue() == (
        "NAMESPACE         NAME                 BUILD TYPE   BUILD REF   TARGET TYPE   TARGET REF   STATUS      AGE\n"
        "default           test-adapter         <unknown>    <unknown>   <unknown>     <unknown>    <unknown>   <unknown>\n"
        "other-namespace   test-other-adapter   <unknown>    <unknown>   <unknown>     <unknown>    <unknown>   <unknown>\n"
    )


def test_list_all_columns():
    ready = [Condition(type="Ready", status="True")]
    config = make_config(Store([
        Adapter(name="app", namespace=DEFAULT, build=Build(application_ref="my-app"),
                target=AdapterTarget(service_ref="my-service"), conditions=list(ready)),
        Adapter(name="func", namespace=DEFAULT, build=Build(function_ref="my-func"),
                target=AdapterTarget(service_ref="my-service"), conditions=list(ready)),
        Adapter(name="container", namespace=DEFAULT, build=Build(container_ref="my-container"),
                target=AdapterTarget(configuration_ref="my-configuration"),
                conditions=list(ready)),
    ]))
    run_cli(config, "list")
    assert config.stdout.getvalue() == (
        "NAME        BUILD TYPE    BUILD REF      TARGET TYPE     TARGET REF         STATUS   AGE\n"
        "app         application   my-app         service         my-service         Ready    <unknown>\n"
        "container   container     my-container   configuration   my-configuration   Ready    <unknown>\n"
        "func        function      my-func        service         my-service         Ready    <unknown>\n"
    )


def test_list_error():
    config = make_config(Store(failures=[("list", "adapters")]))
    with pytest.raises(RuntimeError):
        run_cli(config, "list")
    assert config.stdout.getvalue() == ""


# status


def test_status_options_invalid():
    with pytest.raises(FieldError) as info:
        AdapterStatusOptions().validate()
    assert info.value == missing_field(NAMESPACE_FLAG).also(missing_field(NAME_ARG))


def test_status_options_valid():
    config = make_config(Store([Adapter(name="my-adapter", namespace=DEFAULT)]))
    options = AdapterStatusOptions(name="my-adapter", namespace=DEFAULT)
    options.validate()
    options.execute(config)
    assert config.stdout.getvalue() == "# my-adapter: <unknown>\n---\nnull\n"


def test_status_invalid_args():
    with pytest.raises(FieldError):
        run_cli(make_config(), "status")


def test_status_show():
    config = make_config(Store([
        Adapter(name="my-adapter", namespace=DEFAULT, conditions=[failing_condition()])
    ]))
    run_cli(config, "status", "my-adapter")
    assert config.stdout.getvalue() == (
        "# my-adapter: OopsieDoodle\n"
        "---\n"
        'lastTransitionTime: "2019-06-29T01:44:05Z"\n'
        "message: a hopefully informative message about what went wrong\n"
        "reason: OopsieDoodle\n"
        'status: "False"\n'
        "type: Ready\n"
    )


def test_status_not_found():
    config = make_config()
    with pytest.raises(SilentError):
        run_cli(config, "status", "my-adapter")
    assert config.stderr.getvalue() == 'Adapter "default/my-adapter" not found\n'


def test_status_get_error():
    config = make_config(Store(
        [Adapter(name="my-adapter", namespace=DEFAULT, conditions=[failing_condition()])],
        failures=[("get", "adapters")],
    ))
    with pytest.raises(RuntimeError):
        run_cli(config, "status", "my-adapter")
    assert config.stdout.getvalue() == ""


# adapter group and formatting


def test_adapter_command_empty_prints_help():
    config = make_config()
    run_cli(config)
    output = config.stdout.getvalue()
    assert "create" in output
    assert "status" in output


def test_format_build_ref():
    assert format_build_ref(Adapter(name="a", build=Build(function_ref="f"))) == ("function", "f")
    assert format_build_ref(Adapter(name="a")) == ("<unknown>", "<unknown>")


def test_format_target_ref():
    adapter = Adapter(name="a", target=AdapterTarget(configuration_ref="c"))
    assert format_target_ref(adapter) == ("configuration", "c")
    assert format_target_ref(Adapter(name="a")) == ("<unknown>", "<unknown>")