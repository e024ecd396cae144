"""
Pytest configuration and fixtures for formscript_runtime tests.
"""

import asyncio
import os
import sys

import pytest

# Add grandparent directory to path for imports (to find formscript_runtime package)
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__)))))

from formscript_runtime.context import HostCallbacks, RuntimeComponent, RuntimeContext
from formscript_runtime.database import reset_memory_databases
from formscript_runtime.interpreter import Interpreter
from formscript_runtime.parser import parse_handler


class RecordingHost:
    """
    Host that records every callback in one ordered event log.

    Input boxes and console reads answer from queues filled by the test.
    """

    def __init__(self):
        self.events = []
        self.property_changes = []
        self.console = []
        self.written = []
        self.errors = []
        self.message_boxes = []
        self.inputs = []
        self.lines = []
        self.keys = []
        self.files = {}

    def callbacks(self) -> HostCallbacks:
        return HostCallbacks(
            on_property_change=self.on_property_change,
            on_console_log=self.on_console_log,
            on_console_write=self.on_console_write,
            on_error=self.on_error,
            on_message_box=self.on_message_box,
            on_input_box=self.on_input_box,
            on_console_read_line=self.on_console_read_line,
            on_console_read_key=self.on_console_read_key,
            on_file_write_all_text=self.on_file_write_all_text,
            on_file_read_all_text=self.on_file_read_all_text,
        )

    def on_property_change(self, name, prop, value):
        self.property_changes.append((name, prop, value))
        self.events.append(('property', name, prop, value))

    def on_console_log(self, text):
        self.console.append(text)
        self.events.append(('console', text))

    def on_console_write(self, text):
        self.written.append(text)

    def on_error(self, message, line=None):
        self.errors.append((message, line))
        self.events.append(('error', message))

    async def on_message_box(self, text):
        self.events.append(('message_box', text))
        await asyncio.sleep(0)
        self.message_boxes.append(text)
        self.events.append(('message_box_closed', text))

    async def on_input_box(self, prompt, title=None, default=None):
        self.events.append(('input_box', prompt))
        await asyncio.sleep(0)
        if self.inputs:
            return self.inputs.pop(0)
        return default or ''

    async def on_console_read_line(self):
        await asyncio.sleep(0)
        return self.lines.pop(0) if self.lines else ''

    async def on_console_read_key(self):
        return self.keys.pop(0) if self.keys else ''

    def on_file_write_all_text(self, name, content, extension):
        self.files[(name, extension)] = content

    def on_file_read_all_text(self, name, extension):
        return self.files.get((name, extension), '')


def make_components():
    return [
        RuntimeComponent('Form1', 'Form', {'text': 'Form1'}),
        RuntimeComponent('TextBox1', 'TextBox', {'text': ''}),
        RuntimeComponent('Label1', 'Label', {'text': 'Label1'}),
        RuntimeComponent('ListBox1', 'ListBox', {'items': [], 'selectedIndex': -1}),
        RuntimeComponent('Button1', 'Button', {'text': 'Button1', 'enabled': True}),
    ]


@pytest.fixture
def host():
    """Fresh recording host"""
    return RecordingHost()


@pytest.fixture
def context(host):
    """Context with a form, a text box, a label, a list box and a button"""
    return RuntimeContext(components=make_components(), callbacks=host.callbacks(), form_name='Form1')


@pytest.fixture
def execute(context):
    """Run handler source against the shared context and return the context"""
    def _execute(source):
        asyncio.run(Interpreter(context).execute_block(parse_handler(source)))
        return context
    return _execute


@pytest.fixture
def evaluate(context):
    """Evaluate an expression against the shared context"""
    def _evaluate(source):
        return asyncio.run(Interpreter(context).evaluate_source(source))
    return _evaluate


@pytest.fixture(autouse=True)
def fresh_databases():
    """In-memory databases do not leak between tests"""
    yield
    reset_memory_databases()
