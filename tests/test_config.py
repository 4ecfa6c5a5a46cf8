"""Unit tests for settings, prompts and run bookkeeping."""
import pytest

from codeloop.agent import CancellationToken, RunCancelledError, UsageSummary
from codeloop.config import AgentSettings, LogLevel
from codeloop.prompts import clear_cache, get_agent_prompt, get_file_editor_prompt, load_prompt

ENV_VARS = [
    "LLM_PROVIDER",
    "OPENAI_API_KEY",
    "OPENAI_CHAT_MODEL",
    "OPENAI_BASE_URL",
    "ANTHROPIC_API_KEY",
    "ANTHROPIC_MODEL",
    "CODELOOP_MAX_ITERATIONS",
    "CODELOOP_THREAD_DB",
    "CODELOOP_FAKE_FUNCTIONS",
    "CODELOOP_LOG_LEVEL",
    "CODELOOP_AUTO_APPROVE",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Environment without codeloop settings and no .env file in reach."""
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        # setenv first so teardown also removes values that load_dotenv adds
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


@pytest.fixture
def fresh_prompts():
    clear_cache()
    yield
    clear_cache()


class TestAgentSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self, clean_env):
        settings = AgentSettings.from_env()

        assert settings.llm_provider == "openai"
        assert settings.max_iterations == 20
        assert settings.thread_db is None
        assert not settings.fake_functions
        assert settings.log_level == "info"

    def test_from_env(self, clean_env, tmp_path):
        clean_env.setenv("LLM_PROVIDER", "claude")
        clean_env.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
        clean_env.setenv("CODELOOP_MAX_ITERATIONS", "5")
        clean_env.setenv("CODELOOP_THREAD_DB", str(tmp_path / "threads.db"))
        clean_env.setenv("CODELOOP_FAKE_FUNCTIONS", "true")
        clean_env.setenv("CODELOOP_LOG_LEVEL", "DEBUG")

        settings = AgentSettings.from_env()

        assert settings.llm_provider == "anthropic"
        assert settings.anthropic_api_key == "sk-ant-test"
        assert settings.max_iterations == 5
        assert settings.thread_db == tmp_path / "threads.db"
        assert settings.fake_functions
        assert settings.log_level == "debug"

    def test_env_file(self, clean_env, tmp_path):
        env_file = tmp_path / "custom.env"
        env_file.write_text("OPENAI_API_KEY=sk-from-file\nCODELOOP_AUTO_APPROVE=1\n")

        settings = AgentSettings.from_env(env_file)

        assert settings.openai_api_key == "sk-from-file"
        assert settings.auto_approve

    def test_invalid_iterations(self, clean_env):
        clean_env.setenv("CODELOOP_MAX_ITERATIONS", "0")
        with pytest.raises(ValueError):
            AgentSettings.from_env()


class TestLogLevel:
    """Tests for log level helpers."""

    def test_ordering(self):
        assert LogLevel.DEBUG < LogLevel.INFO < LogLevel.WARNING < LogLevel.ERROR

    def test_from_string(self):
        assert LogLevel.from_string("Warning") == LogLevel.WARNING
        assert LogLevel.from_string("nonsense") == LogLevel.DEBUG
        assert LogLevel.name(LogLevel.ERROR) == "ERROR"


class TestPrompts:
    """Tests for prompt loading."""

    def test_agent_prompt_has_context_marker(self, fresh_prompts):
        assert "[[CONTEXT]]" in get_agent_prompt()

    def test_file_editor_placeholders_filled(self, fresh_prompts):
        prompt = get_file_editor_prompt()

        assert "{fence}" not in prompt
        assert "{divider}" not in prompt
        assert "%%%\n> Write path/file.py" in prompt

    def test_working_directory_override(self, fresh_prompts, monkeypatch, tmp_path):
        (tmp_path / "prompts").mkdir()
        (tmp_path / "prompts" / "agent.txt").write_text("Custom agent\n[[CONTEXT]]")
        monkeypatch.chdir(tmp_path)

        assert load_prompt("agent") == "Custom agent\n[[CONTEXT]]"

    def test_missing_prompt(self, fresh_prompts):
        with pytest.raises(FileNotFoundError):
            load_prompt("does_not_exist")


class TestUsageSummary:
    """Tests for token accounting."""

    def test_add_stream_usage(self):
        usage = UsageSummary()

        assert usage.add_stream_usage("m", {"prompt_tokens": 7, "completion_tokens": 3}) == (7, 3)
        usage.add_stream_usage("m", {"prompt_tokens": 1, "completion_tokens": 1})

        assert usage.total_calls == 2
        assert usage.model_breakdown["m"] == {"calls": 2, "input_tokens": 8, "output_tokens": 4}

    def test_missing_usage_ignored(self):
        usage = UsageSummary()
        assert usage.add_stream_usage("m", None) is None
        assert usage.total_calls == 0


class TestCancellationToken:
    """Tests for cooperative cancellation."""

    def test_raise_after_cancel(self):
        token = CancellationToken("run-1")
        token.raise_if_cancelled()
        assert not token.is_cancelled

        token.cancel()

        assert token.is_cancelled
        with pytest.raises(RunCancelledError, match="run-1"):
            token.raise_if_cancelled()

    @pytest.mark.asyncio
    async def test_wait_returns_once_cancelled(self):
        token = CancellationToken("run-1")
        token.cancel()
        await token.wait()
