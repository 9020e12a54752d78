import json

import pytest

from hatloop.errors import EnvironmentCreateError
from hatloop.sandbox import ContainerUseAdapter, ExecuteOptions

CREATED = json.dumps({"environment_id": "env-123", "title": "hatloop"})


@pytest.fixture
def cu(executor):
    executor.when("cu", "environment", "create", stdout=CREATED)
    return ContainerUseAdapter(workdir="/repo", executor=executor)


def test_available_when_cu_installed(executor):
    executor.when("cu", "--version", stdout="cu 0.4.2")
    assert ContainerUseAdapter(executor=executor).is_available() is True


def test_unavailable_when_cu_missing(executor):
    executor.when("cu", "--version", exit_code=127, stderr="cu: command not found")
    assert ContainerUseAdapter(executor=executor).is_available() is False


def test_environment_created_lazily_once(cu, executor):
    assert cu.environment_id is None
    assert executor.calls == []

    cu.execute("npm test")
    cu.execute("npm run build")

    creates = executor.argvs("cu", "environment", "create")
    assert creates == [
        ["cu", "environment", "create", "--source", "/repo", "--title", "hatloop", "--json"]
    ]
    assert cu.environment_id == "env-123"

    runs = executor.argvs("cu", "environment", "run")
    assert len(runs) == 2
    assert runs[0] == [
        "cu", "environment", "run", "--id", "env-123", "--source", "/repo", "--command", "npm test",
    ]


def test_existing_env_id_is_reused(executor):
    adapter = ContainerUseAdapter(workdir="/repo", env_id="env-keep", executor=executor)
    adapter.execute("ls")
    assert executor.argvs("cu", "environment", "create") == []
    assert executor.argvs("cu", "environment", "run")[0][4] == "env-keep"


def test_options_translated(cu, executor):
    cu.execute("make", ExecuteOptions(cwd="/other", env={"MODE": "ci"}, timeout=5_000))

    call = [c for c in executor.calls if c.argv[:3] == ["cu", "environment", "run"]][0]
    assert call.argv[call.argv.index("--source") + 1] == "/other"
    assert call.argv[-1] == "env MODE=ci sh -c make"
    assert call.options.timeout == 5_000


def test_create_failure_is_typed(executor):
    executor.when("cu", "environment", "create", exit_code=1, stderr="docker daemon not running")
    adapter = ContainerUseAdapter(executor=executor)

    with pytest.raises(EnvironmentCreateError) as exc:
        adapter.execute("ls")

    assert exc.value.backend == "container-use"
    assert "docker daemon not running" in exc.value.stderr
    assert adapter.environment_id is None
    assert executor.argvs("cu", "environment", "run") == []


def test_create_response_without_id_is_typed(executor):
    executor.when("cu", "environment", "create", stdout="not json at all")
    with pytest.raises(EnvironmentCreateError):
        ContainerUseAdapter(executor=executor).execute("ls")


def test_create_response_after_log_lines(executor):
    executor.when("cu", "environment", "create", stdout=f"pulling base image...\n{CREATED}\n")
    adapter = ContainerUseAdapter(executor=executor)
    adapter.execute("ls")
    assert adapter.environment_id == "env-123"


def test_cleanup_deletes_and_clears(cu, executor):
    cu.execute("ls")
    cu.cleanup()

    assert executor.argvs("cu", "environment", "delete") == [
        ["cu", "environment", "delete", "--id", "env-123", "--source", "/repo"]
    ]
    assert cu.environment_id is None


def test_cleanup_before_creation_and_repeated(cu, executor):
    cu.cleanup()
    cu.execute("ls")
    cu.cleanup()
    cu.cleanup()

    assert len(executor.argvs("cu", "environment", "delete")) == 1


def test_cleanup_failure_is_logged_not_raised(cu, executor, log_messages):
    executor.when("cu", "environment", "delete", exit_code=1, stderr="permission denied")
    cu.execute("ls")

    cu.cleanup()

    assert cu.environment_id is None
    assert any("Failed to delete environment env-123" in m for m in log_messages)
    # retried a bounded number of times
    assert len(executor.argvs("cu", "environment", "delete")) == 3


def test_new_environment_after_cleanup(cu, executor):
    cu.execute("ls")
    cu.cleanup()
    cu.execute("ls")
    assert len(executor.argvs("cu", "environment", "create")) == 2


def test_environment_follows_execute_cwd(executor):
    executor.when("cu", "environment", "create", stdout=CREATED)
    adapter = ContainerUseAdapter(executor=executor)

    adapter.execute("ls", ExecuteOptions(cwd="/target/repo"))
    adapter.cleanup()

    create = executor.argvs("cu", "environment", "create")[0]
    assert create[create.index("--source") + 1] == "/target/repo"
    assert executor.argvs("cu", "environment", "delete") == [
        ["cu", "environment", "delete", "--id", "env-123", "--source", "/target/repo"]
    ]
