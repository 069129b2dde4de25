# forgeclaw

Foundation layer for an agent orchestrator, using only the standard
library (Python 3.11 or later). It provides:

- **Typed identifiers** (`forgeclaw.ids`): `GroupId`, `ContainerId`,
  `ProviderId`, `ChannelId`, `JobId`, `TaskId`, `DispatchId`, `PoolId`.
  Each is a distinct frozen type, so a `GroupId("a")` never equals a
  `ChannelId("a")`. Constructing one directly accepts any string;
  `GroupId.parse(value)` (and the same on every id type) rejects empty or
  whitespace-only values with `IdError`. Use `parse` wherever input enters
  the system. `str(id)` gives the plain value.
- **An error taxonomy** (`forgeclaw.errors`): every classified failure is an
  `ErrorClass` exception: `TransientError(retry_after)`,
  `AuthError(provider, reason)`, `ConfigKeyError(key, reason)`,
  `ContainerError(id, reason)` or `FatalError(reason)`. Only
  `TransientError` reports `is_retriable()` as true. Configuration loading
  raises `ConfigError` subclasses: `ConfigIoError`, `ConfigParseError` and
  `ConfigValidationError` (whose `errors` lists every problem found).
- **A command bus** (`forgeclaw.commands`): point-to-point
  request/response over asyncio. Exactly one handler answers each command.
- **An event bus** (`forgeclaw.events`): broadcast, fire-and-observe.
  Every subscriber sees every event emitted after it subscribed.
- **Configuration** (`forgeclaw.config`, `forgeclaw.config_types`,
  `forgeclaw.env`, `forgeclaw.merge`): a TOML file, optionally layered over
  a user-level file and overridden by `FORGECLAW_*` environment variables,
  with strict parsing and cross-reference validation.

## Installing

From a checkout:

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Configuration

A minimal configuration:

```toml
[runtime]
data_dir = "/var/lib/forgeclaw"
max_concurrent_containers = 4
warm_pool_size = 1

[store]
backend = "sqlite"          # or "postgres"
url = "sqlite:///var/lib/forgeclaw/forgeclaw.db"

[container]
image = "agent:latest"
timeout = "30m"
idle_ttl = "5m"
memory_limit = "4g"
cpu_limit = 2

[providers.anthropic]
type = "anthropic"          # or "openai_compat", optionally with base_url

[channels.discord]
type = "discord"            # discord, telegram, slack or webhook

[groups.main]
provider = "anthropic"
model = "claude-sonnet-4-20250514"
channel = "discord"
is_main = true
```

`runtime`, `store`, `providers`, `groups`, `channels` and `container` are
required; `budget_pools` and `tanren` are optional. Unknown keys, missing
required keys, values of the wrong type and unknown `type` / `backend` /
`action_on_exhaust` values raise `ConfigParseError`.
`runtime.log_level` defaults to `"info"` and `runtime.event_bus_capacity`
to `256`.

Load a single file (read, parsed and validated in one step):

```python
from forgeclaw.config import ForgeclawConfig
from forgeclaw.errors import ConfigError

try:
    config = ForgeclawConfig.load("forgeclaw.toml")
except ConfigError as exc:
    print(exc)
```

Files larger than 1 MiB (`MAX_CONFIG_SIZE`) are refused with
`ConfigValidationError`; unreadable files raise `ConfigIoError`.

`ForgeclawConfig.from_toml(text)` and `ForgeclawConfig.from_dict(table)`
build a configuration without cross-checking it; `to_dict()` returns a
table that `from_dict` accepts again. Every section class in
`forgeclaw.config_types` (`RuntimeConfig`, `StoreConfig`, `ProviderConfig`,
`BudgetPoolConfig`, `GroupConfig`, `FallbackEntry`, `TokenBudget`,
`ContainerDefaults`, `TanrenConfig`, `ChannelConfig`) has the same
`from_dict` / `to_dict` pair.

### Layered loading

`ForgeclawConfig.load_layered(project_path=None, env=None)` merges, lowest
precedence first:

1. `$HOME/.config/forgeclaw/config.toml` (see `home_config_path(env)`), if it
   exists;
2. the project file (`./forgeclaw.toml` when no path is given), if it
   exists;
3. overrides from `env` (the process environment when `env` is `None`).

The merged table is then parsed and validated. Tables merge key by key; any
other value in a higher layer replaces the lower one
(`forgeclaw.merge.deep_merge`).

Only variables that start with `FORGECLAW_` **and** contain `__` are
overrides; `__` separates path segments:

```
FORGECLAW_RUNTIME__LOG_LEVEL=debug
FORGECLAW_RUNTIME__MAX_CONCURRENT_CONTAINERS=8
FORGECLAW_PROVIDERS__MyProvider__BASE_URL='"http://localhost:8080"'
```

Section and field names are lowercased; the name right after `PROVIDERS`,
`GROUPS`, `CHANNELS` or `BUDGET_POOLS` keeps its casing. Values are read as
TOML values where possible (`42`, `true`, `3.5`, `"quoted"`) and as plain
strings otherwise. Variables without `__`, such as API keys, are never
copied into the configuration. The pieces are available on their own in
`forgeclaw.env`: `parse_env_value`, `normalize_env_path`, `set_nested` and
`apply_env_overrides`.

### Validation

`ForgeclawConfig.validate()` raises `ConfigValidationError` listing every
broken reference at once: groups pointing at unknown providers, channels,
budget pools or fallback providers, and groups defined while no channel
exists.

## Command bus

```python
import asyncio

from forgeclaw.commands import CommandBus, SpawnContainer
from forgeclaw.ids import ContainerId, GroupId


async def main() -> None:
    bus, receiver = CommandBus.create(16)

    async def handler() -> None:
        async for command, responder in receiver:
            responder.respond(ContainerId("ctr-1"))

    task = asyncio.create_task(handler())
    container_id = await bus.call(SpawnContainer(group=GroupId("main")))
    bus.close()          # the handler loop ends once every handle is closed
    await task


asyncio.run(main())
```

`CommandBus.create(capacity)` clamps the capacity to at least 1 and returns
the bus and its `CommandReceiver`. `bus.clone()` gives another handle to
the same handler; `close()` (or `with bus:`) releases a handle, and
`receiver.recv()` returns `None` once every handle is closed.

A handler answers with `responder.respond(value)`, fails with
`responder.fail(error)` using an `ErrorClass` (the caller then gets
`HandlerFailed`, whose `error` is the original), or gives up with
`responder.abandon()`. If the receiver is closed, or a responder is
abandoned or discarded without an answer, the caller gets
`HandlerDropped`. Both are `CommandError`s; `is_retriable()` is true only
for a `HandlerFailed` wrapping a `TransientError`. The ready-made commands
are `SpawnContainer` (answered with a `ContainerId`) and `HealthCheck`
(answered with a `bool`); define others by subclassing `Command`.

## Event bus

```python
from forgeclaw.events import ConfigEvent, EventBus

bus = EventBus(256)
subscription = bus.subscribe()
delivered = bus.emit(ConfigEvent(keys_changed=["runtime.log_level"]))
event = subscription.try_recv()   # or: await subscription.recv()
```

Event types are `MessageEvent`, `ContainerEvent`, `ProviderEvent`,
`TanrenEvent`, `TaskEvent`, `HealthEvent`, `IpcEvent` and `ConfigEvent`.
`emit` returns the number of open subscriptions (zero if nobody listens,
in which case the event is not kept). The bus keeps the last `capacity`
events (at least 1); a subscriber that falls further behind gets `Lagged`
(with `skipped`) once, then continues with the oldest event still held.
`try_recv` raises `SubscriptionEmpty` when nothing is waiting. Close a
subscription with `close()` or use it as a context manager.

## What this package does not do

It is a library of building blocks only. It has no command-line program
and runs no service: there is no container runtime, no provider or channel
client, no scheduler and no database access. The `store` section is parsed
and checked, but nothing in the package connects to or stores anything in
that database.