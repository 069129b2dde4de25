from pathlib import Path

import pytest

from forgeclaw.config import MAX_CONFIG_SIZE, ForgeclawConfig, home_config_path
from forgeclaw.config_types import ChannelKind, ProviderKind, StoreBackend
from forgeclaw.errors import ConfigIoError, ConfigParseError, ConfigValidationError

COMMON = """
[runtime]
data_dir = "/tmp"
max_concurrent_containers = 1
warm_pool_size = 0

[store]
backend = "sqlite"
url = "sqlite:///tmp/test.db"

[container]
image = "test:latest"
timeout = "10m"
idle_ttl = "1m"
memory_limit = "1g"
cpu_limit = 1
"""

FULL = """
[runtime]
data_dir = "/var/lib/forgeclaw"
log_level = "info"
max_concurrent_containers = 4
warm_pool_size = 1

[store]
backend = "sqlite"
url = "sqlite:///var/lib/forgeclaw/forgeclaw.db"

[providers.anthropic]
type = "anthropic"

[providers.ollama]
type = "openai_compat"
base_url = "http://localhost:11434/v1"

[budget_pools.shared]
daily_limit = 100000
monthly_limit = 2000000
action_on_exhaust = "fallback"
alert_thresholds = [0.8, 0.95]

[channels.discord]
type = "discord"

[container]
image = "forgeclaw-agent:latest"
timeout = "30m"
idle_ttl = "5m"
memory_limit = "4g"
cpu_limit = 2

[groups.main]
provider = "anthropic"
model = "claude-sonnet-4-20250514"
channel = "discord"
is_main = true
budget_pool = "shared"
fallback = [{ provider = "ollama", model = "llama3" }]

[tanren]
api_url = "http://localhost:8080"
"""


def write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# Basic loading


def test_load_full_file(tmp_path):
    config = ForgeclawConfig.load(write(tmp_path / "forgeclaw.toml", FULL))
    assert config.runtime.log_level == "info"
    assert "anthropic" in config.providers
    assert "main" in config.groups
    assert "discord" in config.channels
    assert config.providers["ollama"].kind is ProviderKind.OPENAI_COMPAT
    assert config.tanren is not None and config.tanren.api_url == "http://localhost:8080"


def test_default_log_level_applied():
    config = ForgeclawConfig.from_toml(COMMON + "[providers]\n[groups]\n[channels]\n")
    assert config.runtime.log_level == "info"
    assert config.runtime.event_bus_capacity == 256
    assert config.store.backend is StoreBackend.SQLITE
    assert config.tanren is None
    assert config.budget_pools == {}


def test_missing_required_field_produces_error():
    with pytest.raises(ConfigParseError) as info:
        ForgeclawConfig.from_toml('[runtime]\ndata_dir = "/tmp"\n')
    assert "missing" in str(info.value)


def test_missing_channels_produces_error():
    with pytest.raises(ConfigParseError) as info:
        ForgeclawConfig.from_toml(COMMON + "[providers]\n[groups]\n")
    assert "channels" in str(info.value)


def test_invalid_store_backend_produces_error():
    text = COMMON.replace('backend = "sqlite"', 'backend = "mysql"') + "[providers]\n[groups]\n[channels]\n"
    with pytest.raises(ConfigParseError):
        ForgeclawConfig.from_toml(text)


def test_is_main_defaults_to_false():
    text = COMMON + """
[providers.ollama]
type = "openai_compat"
base_url = "http://localhost:11434/v1"

[channels.discord]
type = "discord"

[groups.test]
provider = "ollama"
model = "llama3"
channel = "discord"
"""
    config = ForgeclawConfig.from_toml(text)
    assert config.groups["test"].is_main is False


def test_load_nonexistent_file_returns_io_error():
    with pytest.raises(ConfigIoError):
        ForgeclawConfig.load(Path("/nonexistent/forgeclaw.toml"))


def test_invalid_toml_syntax_is_parse_error():
    with pytest.raises(ConfigParseError):
        ForgeclawConfig.from_toml("[runtime\n")


def test_oversized_file_is_rejected(tmp_path):
    path = tmp_path / "big.toml"
    path.write_text("# " + "x" * MAX_CONFIG_SIZE + "\n", encoding="utf-8")
    with pytest.raises(ConfigValidationError) as info:
        ForgeclawConfig.load(path)
    assert "exceeds maximum size of 1048576 bytes" in str(info.value)


# Unknown fields


def test_unknown_fields_rejected():
    text = COMMON.replace(
        "warm_pool_size = 0", "warm_pool_size = 0\nthis_key_does_not_exist = true"
    ) + "[providers]\n[groups]\n[channels]\n"
    with pytest.raises(ConfigParseError) as info:
        ForgeclawConfig.from_toml(text)
    assert "unknown" in str(info.value)


def test_unknown_top_level_field_rejected():
    text = 'bogus_section = "oops"\n' + COMMON + "[providers]\n[groups]\n[channels]\n"
    with pytest.raises(ConfigParseError) as info:
        ForgeclawConfig.from_toml(text)
    assert "bogus_section" in str(info.value)


# Channels


def test_channel_config_deserializes():
    text = COMMON + """
[providers]
[groups]

[channels.discord]
type = "discord"
name = "My Discord Bot"

[channels.discord.settings]
guild_id = "123456"

[channels.webhook]
type = "webhook"
"""
    config = ForgeclawConfig.from_toml(text)
    assert len(config.channels) == 2
    discord = config.channels["discord"]
    assert discord.kind is ChannelKind.DISCORD
    assert discord.name == "My Discord Bot"
    assert "guild_id" in discord.settings


# Round trip


def test_to_dict_round_trips():
    config = ForgeclawConfig.from_toml(FULL)
    assert ForgeclawConfig.from_dict(config.to_dict()) == config


def test_to_dict_omits_missing_tanren():
    config = ForgeclawConfig.from_toml(COMMON + "[providers]\n[groups]\n[channels]\n")
    table = config.to_dict()
    assert "tanren" not in table
    assert table["budget_pools"] == {}


# Layered loading


def test_home_config_path_uses_home():
    assert home_config_path({"HOME": "/home/u"}) == Path("/home/u/.config/forgeclaw/config.toml")


def test_home_config_path_without_home_is_none():
    assert home_config_path({}) is None


def test_layered_load_from_single_project_file(tmp_path):
    path = write(tmp_path / "project.toml", FULL)
    config = ForgeclawConfig.load_layered(path, env={})
    assert config.runtime.log_level == "info"
    assert "anthropic" in config.providers


def test_layered_default_project_path(tmp_path, monkeypatch):
    write(tmp_path / "forgeclaw.toml", FULL)
    monkeypatch.chdir(tmp_path)
    config = ForgeclawConfig.load_layered(env={})
    assert config.runtime.data_dir == "/var/lib/forgeclaw"


def test_layered_with_nothing_present_fails(tmp_path):
    with pytest.raises(ConfigParseError) as info:
        ForgeclawConfig.load_layered(tmp_path / "absent.toml", env={})
    assert "missing field `runtime`" in str(info.value)


def test_layered_precedence_env_over_project_over_user(tmp_path):
    home = tmp_path / "home"
    write(
        home / ".config" / "forgeclaw" / "config.toml",
        """
[runtime]
data_dir = "/user"
log_level = "warn"
max_concurrent_containers = 3
warm_pool_size = 10

[store]
backend = "sqlite"
url = "sqlite:///user/forgeclaw.db"

[container]
image = "user-image:latest"
timeout = "30m"
idle_ttl = "5m"
memory_limit = "4g"
cpu_limit = 2

[providers.anthropic]
type = "anthropic"

[channels.discord]
type = "discord"

[groups.main]
provider = "anthropic"
model = "claude-sonnet-4-20250514"
channel = "discord"
""",
    )
    project = write(
        tmp_path / "project.toml",
        '[runtime]\ndata_dir = "/project"\nlog_level = "debug"\n',
    )
    env = {"HOME": str(home), "FORGECLAW_RUNTIME__DATA_DIR": '"/env"'}
    config = ForgeclawConfig.load_layered(project, env=env)
    assert config.runtime.data_dir == "/env"
    assert config.runtime.log_level == "debug"
    assert config.runtime.warm_pool_size == 10


def test_layered_env_override_is_typed(tmp_path):
    project = write(tmp_path / "project.toml", FULL)
    env = {
        "FORGECLAW_RUNTIME__MAX_CONCURRENT_CONTAINERS": "10",
        "FORGECLAW_ANTHROPIC_API_KEY": "secret",
    }
    config = ForgeclawConfig.load_layered(project, env=env)
    assert config.runtime.max_concurrent_containers == 10


def test_layered_runs_validation(tmp_path):
    project = write(tmp_path / "project.toml", FULL)
    env = {"FORGECLAW_GROUPS__main__PROVIDER": '"ghost"'}
    with pytest.raises(ConfigValidationError) as info:
        ForgeclawConfig.load_layered(project, env=env)
    assert "ghost" in str(info.value)


# Validation


def test_validate_catches_broken_provider_ref():
    text = COMMON + """
[providers]

[channels.discord]
type = "discord"

[groups.main]
provider = "nonexistent"
model = "test"
channel = "discord"
"""
    config = ForgeclawConfig.from_toml(text)
    with pytest.raises(ConfigValidationError) as info:
        config.validate()
    assert "nonexistent" in str(info.value)
    assert info.value.errors == ["group 'main' references unknown provider 'nonexistent'"]


def test_validate_catches_broken_channel_ref():
    text = COMMON + """
[providers.test]
type = "anthropic"

[channels.slack]
type = "slack"

[groups.main]
provider = "test"
model = "test"
channel = "nonexistent"
"""
    config = ForgeclawConfig.from_toml(text)
    with pytest.raises(ConfigValidationError) as info:
        config.validate()
    assert "nonexistent" in str(info.value)


EMPTY_CHANNELS = COMMON + """
[providers.test]
type = "anthropic"

[channels]

[groups.main]
provider = "test"
model = "test"
channel = "discord"
"""


def test_validate_catches_channel_ref_with_empty_channels():
    config = ForgeclawConfig.from_toml(EMPTY_CHANNELS)
    with pytest.raises(ConfigValidationError) as info:
        config.validate()
    assert "discord" in str(info.value)


def test_validate_catches_empty_channels_with_groups():
    config = ForgeclawConfig.from_toml(EMPTY_CHANNELS)
    with pytest.raises(ConfigValidationError) as info:
        config.validate()
    assert "at least one channel" in str(info.value)
    assert info.value.errors == [
        "at least one channel must be defined when groups are present",
        "group 'main' references unknown channel 'discord'",
    ]


def test_validate_catches_broken_budget_pool_ref():
    text = COMMON + """
[providers.test]
type = "anthropic"

[channels.discord]
type = "discord"

[groups.main]
provider = "test"
model = "test"
channel = "discord"
budget_pool = "nonexistent"
"""
    config = ForgeclawConfig.from_toml(text)
    with pytest.raises(ConfigValidationError) as info:
        config.validate()
    assert "nonexistent" in str(info.value)


def test_validate_catches_broken_fallback_provider_ref():
    text = COMMON + """
[providers.test]
type = "anthropic"

[channels.discord]
type = "discord"

[groups.main]
provider = "test"
model = "test"
channel = "discord"
fallback = [{ provider = "ghost", model = "m" }]
"""
    config = ForgeclawConfig.from_toml(text)
    with pytest.raises(ConfigValidationError) as info:
        config.validate()
    assert "ghost" in str(info.value)
    assert "fallback[0]" in str(info.value)


def test_invalid_provider_kind_rejected():
    text = COMMON + """
[providers.bad]
type = "anthorpic"

[channels.discord]
type = "discord"

[groups]
"""
    with pytest.raises(ConfigParseError) as info:
        ForgeclawConfig.from_toml(text)
    assert "unknown variant" in str(info.value)


def test_invalid_channel_kind_rejected():
    text = COMMON + """
[providers]

[channels.bad]
type = "discrod"

[groups]
"""
    with pytest.raises(ConfigParseError) as info:
        ForgeclawConfig.from_toml(text)
    assert "unknown variant" in str(info.value)


def test_validate_passes_valid_config():
    config = ForgeclawConfig.from_toml(FULL)
    assert config.validate() is None
    assert config.groups["main"].budget_pool == "shared"


def test_load_runs_validation_automatically(tmp_path):
    path = write(
        tmp_path / "bad.toml",
        COMMON
        + """
[providers]

[channels.discord]
type = "discord"

[groups.main]
provider = "nonexistent"
model = "test"
channel = "discord"
""",
    )
    with pytest.raises(ConfigValidationError) as info:
        ForgeclawConfig.load(path)
    assert "nonexistent" in str(info.value)


def test_maps_are_kept_in_key_order():
    text = COMMON + """
[providers.zeta]
type = "anthropic"

[providers.alpha]
type = "anthropic"

[groups]
[channels]
"""
    config = ForgeclawConfig.from_toml(text)
    assert list(config.providers) == ["alpha", "zeta"]