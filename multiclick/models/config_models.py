from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, Union

from multiclick.core.exceptions import ConfigLoadError


###############################################################################
# 1. TRIGGER ------------------------------------------------------------------
###############################################################################

@dataclass(frozen=True, slots=True)
class Trigger:
    """Opaque device/event matcher, passed through to ``subscribe_trigger``."""
    platform: str                      # "device" / "event" / …
    payload: Dict[str, Any] = field(default_factory=dict)

    # ---------- factory --------------------------------------------------- #
    @classmethod
    def from_row(cls, row: Any, where: str = "trigger") -> "Trigger":
        if isinstance(row, Trigger):
            return row
        if not isinstance(row, Mapping):
            raise ConfigLoadError(f"{where}: expected a mapping, got {type(row).__name__}")
        platform = row.get("trigger") or row.get("platform")
        if not platform:
            raise ConfigLoadError(f"{where}: missing 'trigger' key")
        return cls(platform=str(platform), payload=dict(row))

    def to_message(self) -> Dict[str, Any]:
        return {"type": "subscribe_trigger", "trigger": dict(self.payload)}


###############################################################################
# 2. ACTION -------------------------------------------------------------------
###############################################################################

@dataclass(frozen=True, slots=True)
class Action:
    """Opaque service call; the payload becomes the ``call_service`` message body."""
    domain: str
    service: str
    payload: Dict[str, Any] = field(default_factory=dict)

    # ---------- factory --------------------------------------------------- #
    @classmethod
    def from_row(cls, row: Any, where: str = "action") -> "Action":
        if isinstance(row, Action):
            return row
        if not isinstance(row, Mapping):
            raise ConfigLoadError(f"{where}: expected a mapping, got {type(row).__name__}")
        for key in ("domain", "service"):
            if not row.get(key):
                raise ConfigLoadError(f"{where}: missing '{key}'")
        return cls(domain=str(row["domain"]), service=str(row["service"]), payload=dict(row))

    def to_message(self) -> Dict[str, Any]:
        # the envelope type is fixed; everything else passes through untouched
        return {**self.payload, "type": "call_service"}

    def __str__(self) -> str:
        target = self.payload.get("target")
        return f"{self.domain}.{self.service}" + (f" {target}" if target else "")


ActionProducer = Callable[[], Sequence[Any]]


###############################################################################
# 3. BUTTON -------------------------------------------------------------------
###############################################################################

@dataclass(frozen=True, slots=True)
class ButtonSpec:
    """One physical button: a fixed "off" action and a cycle of "on" actions."""
    name: str
    off_trigger: Trigger
    off_action: Action
    on_trigger: Trigger
    on_actions: Union[Tuple[Action, ...], ActionProducer]

    @property
    def is_dynamic(self) -> bool:
        return callable(self.on_actions)

    def resolve_on_actions(self) -> Tuple[Action, ...]:
        """Return the current "on" action list, invoking the producer if dynamic."""
        if not self.is_dynamic:
            return self.on_actions
        produced = self.on_actions()
        if isinstance(produced, (str, bytes, Mapping)) or not isinstance(produced, Sequence):
            raise ConfigLoadError(f"{self.name}: on.actions producer must return a list")
        return tuple(Action.from_row(a, f"{self.name}: on.actions[{i}]")
                     for i, a in enumerate(produced))

    # ---------- factory --------------------------------------------------- #
    @classmethod
    def from_row(cls, row: Any, index: int = 0) -> "ButtonSpec":
        if not isinstance(row, Mapping):
            raise ConfigLoadError(f"buttons[{index}]: expected a mapping")
        name = str(row.get("name") or f"button-{index}")
        off, on = row.get("off"), row.get("on")
        if not isinstance(off, Mapping) or not isinstance(on, Mapping):
            raise ConfigLoadError(f"{name}: both 'on' and 'off' sections are required")

        raw_actions = on.get("actions")
        if callable(raw_actions):
            on_actions: Union[Tuple[Action, ...], ActionProducer] = raw_actions
        elif isinstance(raw_actions, (list, tuple)):
            if not raw_actions:
                raise ConfigLoadError(f"{name}: on.actions must not be empty")
            on_actions = tuple(Action.from_row(a, f"{name}: on.actions[{i}]")
                               for i, a in enumerate(raw_actions))
        else:
            raise ConfigLoadError(f"{name}: on.actions must be a list or a function returning one")

        return cls(
            name        = name,
            off_trigger = Trigger.from_row(off.get("trigger"), f"{name}: off.trigger"),
            off_action  = Action.from_row(off.get("action"), f"{name}: off.action"),
            on_trigger  = Trigger.from_row(on.get("trigger"), f"{name}: on.trigger"),
            on_actions  = on_actions,
        )


###############################################################################
# 4. CONFIGURATION ------------------------------------------------------------
###############################################################################

@dataclass(frozen=True, slots=True)
class Configuration:
    """Immutable result of one successful configuration load."""
    home_assistant_url: str
    long_lived_token: str = field(repr=False)
    buttons: Tuple[ButtonSpec, ...]
    verbose: bool = False

    # ---------- factory --------------------------------------------------- #
    @classmethod
    def from_row(cls, row: Any, defaults: Optional[Mapping[str, Any]] = None) -> "Configuration":
        if not isinstance(row, Mapping):
            raise ConfigLoadError(f"config must be a mapping, got {type(row).__name__}")
        merged = {k: v for k, v in (defaults or {}).items() if v is not None}
        merged.update({k: v for k, v in row.items() if v is not None})

        url = merged.get("home_assistant_url")
        token = merged.get("long_lived_token")
        if not url:
            raise ConfigLoadError("home_assistant_url is not set")
        if not token:
            raise ConfigLoadError("long_lived_token is not set")

        raw_buttons = merged.get("buttons")
        if not isinstance(raw_buttons, (list, tuple)) or not raw_buttons:
            raise ConfigLoadError("buttons must be a non-empty list")

        return cls(
            home_assistant_url = str(url).rstrip("/"),
            long_lived_token   = str(token),
            buttons            = tuple(ButtonSpec.from_row(b, i) for i, b in enumerate(raw_buttons)),
            verbose            = bool(merged.get("verbose", False)),
        )
