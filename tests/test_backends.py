import pytest

from hatloop.backends import (
    BackendSelector,
    ClaudeBackend,
    CustomBackend,
    GeminiBackend,
    KiroBackend,
    OpenCodeBackend,
    create_backend,
)
from hatloop.config_loader import BackendConfig
from hatloop.errors import ConfigError
from hatloop.hats import HatDefinition


def test_claude_invocation(executor):
    executor.when("claude", stdout="EVENT: plan.ready\n")
    backend = ClaudeBackend(model="opus", workdir="/repo", executor=executor)

    result = backend.execute("do it")

    assert result.output == "EVENT: plan.ready\n"
    assert result.exit_code == 0
    call = executor.calls[0]
    assert call.argv == ["claude", "-p", "do it", "--allowedTools", "Edit,Write,Bash,Read,Glob,Grep", "--model", "opus"]
    assert call.options.cwd == "/repo"
    assert call.options.stdin is None


def test_non_zero_exit_is_returned_not_raised(executor):
    executor.when("claude", exit_code=1, stderr="rate limited")
    result = ClaudeBackend(executor=executor).execute("x")
    assert result.exit_code == 1
    assert result.output == "rate limited"


def test_missing_cli_is_exit_127(executor):
    executor.when("gemini", exit_code=127, stderr="gemini: command not found")
    result = GeminiBackend(executor=executor).execute("x")
    assert result.exit_code == 127


def test_custom_backend_arg_modes(executor):
    CustomBackend("my-agent", args=["--headless"], prompt_flag="-p", executor=executor).execute("hi")
    CustomBackend("my-agent", executor=executor).execute("hi")

    assert executor.calls[0].argv == ["my-agent", "--headless", "-p", "hi"]
    assert executor.calls[1].argv == ["my-agent", "hi"]


def test_custom_backend_stdin_mode(executor):
    backend = CustomBackend("another-agent", args=["--quiet"], prompt_mode="stdin", executor=executor)
    backend.execute("Write a function")

    call = executor.calls[0]
    assert call.argv == ["another-agent", "--quiet"]
    assert call.options.stdin == "Write a function"
    assert backend.name == "custom:another-agent"


def test_create_backend(executor):
    assert isinstance(create_backend(BackendConfig(type="claude"), executor=executor), ClaudeBackend)
    assert isinstance(create_backend(BackendConfig(type="gemini"), executor=executor), GeminiBackend)
    custom = create_backend(BackendConfig(type="custom", command="agent", timeout=30), executor=executor)
    assert custom.timeout == 30_000

    with pytest.raises(ConfigError):
        create_backend(BackendConfig(type="custom"))

    assert isinstance(create_backend(BackendConfig(type="opencode"), executor=executor), OpenCodeBackend)
    kiro = create_backend(BackendConfig(type="kiro", agent="reviewer"), executor=executor)
    assert isinstance(kiro, KiroBackend)
    assert kiro.agent == "reviewer"

    with pytest.raises(ConfigError, match="Unknown backend type"):
        create_backend(BackendConfig(type="codex"))


def test_selector_honours_hat_override(executor):
    selector = BackendSelector(BackendConfig(type="claude"), executor=executor)
    plain = HatDefinition(id="a", triggers=("x",))
    override = HatDefinition(id="b", triggers=("y",), backend="gemini", model="flash")

    assert isinstance(selector.select(None), ClaudeBackend)
    assert isinstance(selector.select(plain), ClaudeBackend)
    chosen = selector.select(override)
    assert isinstance(chosen, GeminiBackend)
    assert chosen.model == "flash"
    assert selector.select(plain) is selector.select(None)


def test_opencode_invocation(executor):
    executor.when("opencode", stdout="EVENT: build.done\n")
    result = OpenCodeBackend(executor=executor).execute("build it")

    assert executor.calls[0].argv == ["opencode", "run", "build it"]
    assert result.output == "EVENT: build.done\n"


def test_kiro_invocation(executor):
    KiroBackend(agent="my-agent", executor=executor).execute("prompt")
    KiroBackend(executor=executor).execute("prompt")

    assert executor.argvs("kiro-cli") == [["kiro-cli", "--agent", "my-agent", "prompt"], ["kiro-cli", "prompt"]]


def test_selector_resolves_kiro_hat_override(executor):
    selector = BackendSelector(BackendConfig(type="claude", agent="dev"), executor=executor)
    hat = HatDefinition(id="k", triggers=("x",), backend="kiro")

    chosen = selector.select(hat)

    assert isinstance(chosen, KiroBackend)
    assert chosen.agent == "dev"
