"""
FormScript Runtime - run session front end

Drives one run session the way a form designer's preview pane does:

    runtime = FormScriptRuntime(components, callbacks=host)
    await runtime.load_handlers({"Button1_Click": 'TextBox1.Text = "hi"'})
    await runtime.start()              # runs Form1_Load (or Main), starts timers
    await runtime.fire_event("Button1", "Click")
    await runtime.stop()

Handlers are parsed once, up front. A handler that fails to parse is reported
once as "Parse error in <key>: ..." and left out of the handler table. Each
event runs in a fresh Interpreter against the shared RuntimeContext; errors
raised by collaborators (database, host) abort that one invocation and are
reported as "Runtime error in <key>: ...".

Timer components (type "Timer") with Enabled and a positive Interval (ms)
run their <Name>_Tick handler as independent asyncio tasks.
"""

import asyncio
import dataclasses
import logging
from typing import Any, Dict, Iterable, List, Optional, Set

from .builtins import convert_to_bool, to_number
from .config import RuntimeConfig
from .context import HostCallbacks, RuntimeComponent, RuntimeContext, call_host
from .errors import FormScriptError, ParseError
from .interpreter import Interpreter
from .parser import parse_handler, parse_program


logger = logging.getLogger("formscript.runtime")
logger.addHandler(logging.NullHandler())


FORM_ALIASES = ('Me', 'MyBase')


class FormScriptRuntime:
    """One run session: components, parsed handlers, timers"""

    def __init__(
        self,
        components: Iterable[RuntimeComponent] = (),
        callbacks: Optional[HostCallbacks] = None,
        form_name: Optional[str] = None,
        config: Optional[RuntimeConfig] = None,
        variables: Optional[Dict[str, Any]] = None,
    ):
        self.config = config or RuntimeConfig()
        self.host = callbacks or HostCallbacks()
        self.form_name = form_name or self.config.default_form_name

        session_components = [
            RuntimeComponent(c.name, c.type_name, dict(c.properties)) for c in components
        ]
        if not any(c.name == self.form_name for c in session_components):
            session_components.append(RuntimeComponent(self.form_name, 'Form', {'text': self.form_name}))

        wrapped = dataclasses.replace(self.host, on_property_change=self._on_property_change)
        self.context = RuntimeContext(
            components=session_components,
            variables=variables,
            callbacks=wrapped,
            form_name=self.form_name,
            config=self.config,
        )
        self.parse_errors: Dict[str, str] = {}
        self._timers: Dict[str, asyncio.Task] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._started = False

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _handler_key(self, key: str) -> str:
        """Me_Load / MyBase_Load -> <Form>_Load"""
        owner, sep, event = key.partition('_')
        if sep and owner in FORM_ALIASES:
            return f"{self.form_name}_{event}"
        return key

    async def _report_parse_error(self, key: str, error: ParseError):
        self.parse_errors[key] = error.message
        await self.context.report_error(f"Parse error in {key}: {error.message}", error.line)

    async def load_handlers(self, sources: Dict[str, str]) -> List[str]:
        """
        Parse handler bodies keyed by "Component_Event".

        Returns the keys that parsed successfully.
        """
        loaded = []
        for key, source in sources.items():
            try:
                block = parse_handler(source)
            except ParseError as e:
                await self._report_parse_error(key, e)
                continue
            self.context.handlers[self._handler_key(key)] = block
            loaded.append(key)
        return loaded

    async def load_program(self, source: str, name: str = '<module>') -> bool:
        """
        Parse a module of Sub blocks and run its top-level statements.

        Returns False if the module failed to parse.
        """
        try:
            program = parse_program(source)
        except ParseError as e:
            await self._report_parse_error(name, e)
            return False

        for key, body in program.handlers.items():
            self.context.handlers[self._handler_key(key)] = body
        await self._run_block(name, program.declarations)
        return True

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def start(self):
        """Run <Form>_Load, else Main, then start enabled timers"""
        self._started = True
        load_key = f"{self.form_name}_Load"
        if load_key in self.context.handlers:
            await self.fire(load_key)
        elif 'Main' in self.context.handlers:
            await self.fire('Main')

        for component in self.context.components.values():
            self._sync_timer(component.name)

    async def fire(self, key: str) -> bool:
        """Run the handler registered under key; False if none ran"""
        if self.context.stopped or key not in self.context.handlers:
            return False
        interpreter = Interpreter(self.context)
        try:
            return await interpreter.execute_handler(key)
        except FormScriptError as e:
            await self.context.report_error(f"Runtime error in {key}: {e.message}", e.line)
            return False

    async def fire_event(self, component: str, event: str) -> bool:
        return await self.fire(f"{component}_{event}")

    async def update_from_ui(self, component: str, prop: str, value: Any):
        """Apply a value the user changed in the UI (typing, checking, selecting)"""
        if self.context.stopped or not self.context.has_component(component):
            return
        await self.context.set_property(component, prop, value)

    async def execute(self, source: str, name: str = '<immediate>') -> bool:
        """Parse and run a block of statements outside any handler"""
        try:
            block = parse_handler(source)
        except ParseError as e:
            await self._report_parse_error(name, e)
            return False
        return await self._run_block(name, block)

    async def evaluate(self, source: str) -> Any:
        """Evaluate one expression against the session state"""
        return await Interpreter(self.context).evaluate_source(source)

    async def _run_block(self, name: str, block: List) -> bool:
        interpreter = Interpreter(self.context)
        try:
            await interpreter.execute_block(block)
        except FormScriptError as e:
            await self.context.report_error(f"Runtime error in {name}: {e.message}", e.line)
            return False
        return True

    async def stop(self):
        """Stop the session: abort running handlers, cancel timers"""
        self.context.stop()
        pending = list(self._timers.values()) + list(self._tasks)
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._timers.clear()
        self._tasks.clear()

    async def wait_idle(self):
        """Wait for timer ticks that are still running"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Timers
    # ------------------------------------------------------------------

    async def _on_property_change(self, component: str, prop: str, value: Any):
        await call_host(self.host.on_property_change, component, prop, value)
        if self._started and prop in ('enabled', 'interval'):
            self._sync_timer(component)

    def _timer_interval(self, component: RuntimeComponent) -> float:
        return to_number(component.properties.get('interval')) / 1000.0

    def _sync_timer(self, name: str):
        """Start or cancel the tick loop of a Timer to match Enabled/Interval"""
        component = self.context.get_component(name)
        if component is None or component.type_name.lower() != 'timer':
            return
        should_run = (
            not self.context.stopped
            and convert_to_bool(component.properties.get("enabled"))
            and self._timer_interval(component) > 0
            and f"{name}_Tick" in self.context.handlers
        )
        running = self._timers.get(name)
        if should_run and running is None:
            logger.debug("starting timer %s", name)
            self._timers[name] = asyncio.get_running_loop().create_task(self._run_timer(name))
        elif not should_run and running is not None:
            logger.debug("stopping timer %s", name)
            running.cancel()
            del self._timers[name]

    async def _run_timer(self, name: str):
        component = self.context.components[name]
        key = f"{name}_Tick"
        while not self.context.stopped:
            await asyncio.sleep(self._timer_interval(component))
            if self.context.stopped or self._timers.get(name) is not asyncio.current_task():
                break
            # Each tick is independent; a slow tick does not delay the next
            task = asyncio.get_running_loop().create_task(self.fire(key))
            self._tasks.add(task)
            task.add_done_callback(self._tick_done)

    def _tick_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("timer tick failed", exc_info=task.exception())


# ============================================================================
# Convenience Function
# ============================================================================

def execute_formscript(source: str, callbacks: Optional[HostCallbacks] = None, **kwargs) -> FormScriptRuntime:
    """
    Load a module, run its Load/Main handler and stop (convenience function)

    Example:
        >>> out = []
        >>> _ = execute_formscript('Sub Main()\\nConsole.WriteLine(2 + 3)\\nEnd Sub',
        ...                        HostCallbacks(on_console_log=out.append))
        >>> out
        ['5']
    """
    async def run():
        runtime = FormScriptRuntime(callbacks=callbacks, **kwargs)
        if await runtime.load_program(source):
            await runtime.start()
        await runtime.stop()
        return runtime

    return asyncio.run(run())


__all__ = [
    'FormScriptRuntime',
    'execute_formscript',
]
