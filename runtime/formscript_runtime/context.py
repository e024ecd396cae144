"""
FormScript Runtime Context

The mutable state shared by every handler invocation in one run session:
the component registry, the flat variable table, the handler table, and the
host callbacks through which the interpreter reaches the outside world.

Host callbacks may be plain functions or coroutine functions. The interpreter
awaits any awaitable a callback returns, which is how message boxes and
console reads suspend a running handler.
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from .config import RuntimeConfig
from .errors import FormScriptError, E_RUNTIME_ERROR


logger = logging.getLogger("formscript.context")
logger.addHandler(logging.NullHandler())


# Case-insensitive property names mapped to their canonical spelling
PROPERTY_ALIASES = {
    'text': 'text',
    'value': 'value',
    'enabled': 'enabled',
    'visible': 'visible',
    'checked': 'checked',
    'backcolor': 'backColor',
    'forecolor': 'foreColor',
    'left': 'left',
    'top': 'top',
    'width': 'width',
    'height': 'height',
    'selectedindex': 'selectedIndex',
    'maximum': 'maximum',
    'minimum': 'minimum',
    'interval': 'interval',
    'items': 'items',
    'count': 'count',
}


def canonical_property(name: str) -> str:
    """Map a script property name to the property bag key"""
    return PROPERTY_ALIASES.get(name.lower(), name)


async def call_host(callback: Callable, *args) -> Any:
    """Invoke a host callback, awaiting its result when it is awaitable"""
    result = callback(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


def is_host_object(value: Any) -> bool:
    """Host objects (database handles and the like) are recognized structurally"""
    return all(hasattr(value, attr) for attr in ('get_member', 'set_member', 'invoke_member'))


# ============================================================================
# Components
# ============================================================================

@dataclass
class RuntimeComponent:
    """A simulated form control with an open property bag"""
    name: str
    type_name: str
    properties: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Host Callbacks
# ============================================================================

def _ignore(*args, **kwargs):
    return None


def _empty_string(*args, **kwargs):
    return ''


@dataclass
class HostCallbacks:
    """Hooks the interpreter calls into; every hook is optional"""
    on_property_change: Callable = _ignore      # (component, prop, value)
    on_console_log: Callable = _ignore          # (text)
    on_console_write: Callable = _ignore        # (text), no trailing newline
    on_error: Callable = _ignore                # (message, line=None)
    on_message_box: Callable = _ignore          # (text) -> awaitable completion
    on_input_box: Callable = _empty_string      # (prompt, title=None, default=None) -> str
    on_console_read_line: Callable = _empty_string
    on_console_read_key: Callable = _empty_string
    on_file_write_all_text: Callable = _ignore  # (name, content, extension)
    on_file_read_all_text: Callable = _empty_string  # (name, extension) -> str


# ============================================================================
# Runtime Context
# ============================================================================

class RuntimeContext:
    """Components, variables and handlers for one run session"""

    def __init__(
        self,
        components: Optional[Iterable[RuntimeComponent]] = None,
        variables: Optional[Dict[str, Any]] = None,
        handlers: Optional[Dict[str, List]] = None,
        callbacks: Optional[HostCallbacks] = None,
        form_name: Optional[str] = None,
        config: Optional[RuntimeConfig] = None,
    ):
        self.components: Dict[str, RuntimeComponent] = {}
        for component in components or []:
            self.add_component(component)
        self.variables: Dict[str, Any] = dict(variables or {})
        self.handlers: Dict[str, List] = dict(handlers or {})
        self.callbacks = callbacks or HostCallbacks()
        self.form_name = form_name
        self.config = config or RuntimeConfig()
        self.console_output: List[str] = []
        self.stopped = False
        self.paused = False

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    def add_component(self, component: RuntimeComponent):
        if component.name in self.components:
            raise FormScriptError(E_RUNTIME_ERROR, f"Duplicate component name: {component.name}")
        self.components[component.name] = component

    def has_component(self, name: str) -> bool:
        return name in self.components

    def get_component(self, name: str) -> Optional[RuntimeComponent]:
        return self.components.get(name)

    def get_property(self, component_name: str, prop: str) -> Any:
        component = self.components[component_name]
        return component.properties.get(canonical_property(prop))

    def store_property(self, component_name: str, prop: str, value: Any) -> str:
        """Write a property without notifying the host"""
        component = self.components[component_name]
        key = canonical_property(prop)
        component.properties[key] = value
        return key

    async def set_property(self, component_name: str, prop: str, value: Any) -> str:
        """
        Store a property and notify the host.

        Returns the canonical property name that was written.
        """
        key = self.store_property(component_name, prop, value)
        await call_host(self.callbacks.on_property_change, component_name, key, value)
        return key

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------

    async def report_error(self, message: str, line: Optional[int] = None):
        """Route a recoverable runtime diagnostic to the host"""
        logger.warning("line %s: %s", line, message)
        await call_host(self.callbacks.on_error, message, line)

    def stop(self):
        """Abort every running handler at its next statement"""
        self.stopped = True

    def pause(self):
        self.paused = True

    def resume(self):
        self.paused = False


__all__ = [
    'PROPERTY_ALIASES',
    'canonical_property',
    'call_host',
    'is_host_object',
    'RuntimeComponent',
    'HostCallbacks',
    'RuntimeContext',
]
