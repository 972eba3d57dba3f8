# config_source.py

import builtins
import functools
import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Union

from multiclick.core.exceptions import ConfigLoadError
from multiclick.models import Configuration
from multiclick.utils import config_helpers, time_helpers


# Builtins a configuration script may use. No import, open, eval, exec,
# getattr or class statements.
SAFE_BUILTINS: Dict[str, Any] = {
    name: getattr(builtins, name)
    for name in (
        "abs", "all", "any", "bool", "dict", "enumerate", "filter", "float",
        "int", "isinstance", "len", "list", "map", "max", "min", "range",
        "reversed", "round", "set", "sorted", "str", "sum", "tuple", "zip",
        "True", "False", "None",
        "Exception", "KeyError", "RuntimeError", "TypeError", "ValueError",
    )
}

LoadResult = Union[Configuration, ConfigLoadError]


class ConfigSource:
    """
    Loads the behaviour configuration from a Python script.

    The script runs with a restricted builtins table and only the capabilities
    returned by :meth:`capabilities` in scope, and must bind ``config`` to a
    mapping shaped like :class:`Configuration`. :meth:`load` never raises for a
    broken script; it returns a :class:`ConfigLoadError` instead.

    The script is trusted code. The restricted builtins narrow what it sees by
    default; they do not isolate it from the process.
    """

    def __init__(self,
                 path: Union[str, Path],
                 defaults: Optional[Mapping[str, Any]] = None,
                 environ: Optional[Mapping[str, str]] = None,
                 clock: Optional[Callable] = None):
        self.path = Path(os.path.abspath(path))
        self.defaults = dict(defaults or {})
        self._environ = environ
        self._clock = clock
        self.log = logging.getLogger(self.__class__.__name__)

    def capabilities(self) -> Dict[str, Any]:
        env = MappingProxyType(dict(os.environ if self._environ is None else self._environ))
        clock = self._clock
        return {
            "env": env,
            "getenv": env.get,
            "now": functools.partial(time_helpers.now, clock=clock),
            "before": functools.partial(time_helpers.before, clock=clock),
            "after": functools.partial(time_helpers.after, clock=clock),
            "between": functools.partial(time_helpers.between, clock=clock),
            "device_trigger": config_helpers.device_trigger,
            "event_trigger": config_helpers.event_trigger,
            "hue_trigger": config_helpers.hue_trigger,
            "rodret_trigger": config_helpers.rodret_trigger,
            "call_service": config_helpers.call_service,
            "activate_scene": config_helpers.activate_scene,
            "light_off_action": config_helpers.light_off_action,
        }

    def load(self) -> LoadResult:
        try:
            source = self.path.read_text(encoding="utf-8")
        except OSError as e:
            return ConfigLoadError(f"cannot read {self.path}: {e}", self.path)

        namespace: Dict[str, Any] = {
            "__builtins__": SAFE_BUILTINS,
            "__name__": "multiclick_config",
            **self.capabilities(),
        }
        try:
            code = compile(source, str(self.path), "exec")
            exec(code, namespace)  # noqa: S102 - capability-scoped namespace
        except SyntaxError as e:
            return ConfigLoadError(f"syntax error in {self.path} line {e.lineno}: {e.msg}", self.path)
        except Exception as e:
            return ConfigLoadError(f"{self.path} raised {type(e).__name__}: {e}", self.path)

        if "config" not in namespace:
            return ConfigLoadError(f"{self.path} does not define 'config'", self.path)

        try:
            configuration = Configuration.from_row(namespace["config"], self.defaults)
        except ConfigLoadError as e:
            e.path = self.path
            return e

        self.log.info(f"Loaded {len(configuration.buttons)} button(s) from {self.path.name}")
        return configuration
