"""
formscript command-line tool

    formscript tokens FILE        list tokens
    formscript parse FILE         dump the AST as JSON
    formscript fmt FILE           reformat a module
    formscript run FILE           run a module against the terminal

`run` loads the module, runs <Form>_Load (or Main) and then lets enabled
timers tick for --duration seconds. Components can be declared in a JSON file:

    [{"name": "Timer1", "type": "Timer", "properties": {"enabled": true, "interval": 500}}]
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

from .ast_nodes import ASTNode
from .config import RuntimeConfig
from .context import HostCallbacks, RuntimeComponent
from .errors import FormScriptError
from .formatter import format_program
from .lexer import tokenize
from .parser import parse_program
from .runtime import FormScriptRuntime


logger = logging.getLogger("formscript.cli")


def ast_to_json(node: Any) -> Any:
    """AST as plain JSON data, each node tagged with its type"""
    if isinstance(node, ASTNode):
        data = {'node': type(node).__name__}
        for f in dataclasses.fields(node):
            data[f.name] = ast_to_json(getattr(node, f.name))
        return data
    if isinstance(node, list):
        return [ast_to_json(item) for item in node]
    if isinstance(node, dict):
        return {key: ast_to_json(value) for key, value in node.items()}
    return node


def load_components(path: Path) -> List[RuntimeComponent]:
    with open(path, 'r', encoding='utf-8') as f:
        entries = json.load(f)
    return [
        RuntimeComponent(entry['name'], entry.get('type', 'Control'), dict(entry.get('properties', {})))
        for entry in entries
    ]


# ============================================================================
# Terminal host
# ============================================================================

class TerminalHost:
    """Host callbacks backed by stdin/stdout and files in a directory"""

    def __init__(self, files_dir: Path, trace: bool = False):
        self.files_dir = files_dir
        self.trace = trace

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

    def on_property_change(self, component: str, prop: str, value: Any):
        if self.trace:
            print(f"[{component}.{prop}] {value!r}")

    def on_console_log(self, text: str):
        print(text)

    def on_console_write(self, text: str):
        print(text, end='', flush=True)

    def on_error(self, message: str, line: Optional[int] = None):
        if line:
            print(f"Error at line {line}: {message}", file=sys.stderr)
        else:
            print(f"Error: {message}", file=sys.stderr)

    async def on_message_box(self, text: str):
        print(f"[MessageBox] {text}")

    async def on_input_box(self, prompt: str, title: Optional[str] = None, default: Optional[str] = None) -> str:
        label = f"[{title}] {prompt}" if title else prompt
        answer = await asyncio.to_thread(input, f"{label} ")
        return answer or (default or '')

    async def on_console_read_line(self) -> str:
        return await asyncio.to_thread(input)

    async def on_console_read_key(self) -> str:
        line = await asyncio.to_thread(input)
        return line[:1]

    def _file_path(self, name: str, extension: str) -> Path:
        return self.files_dir / f"{name}.{extension}"

    def on_file_write_all_text(self, name: str, content: str, extension: str):
        self._file_path(name, extension).write_text(content, encoding='utf-8')

    def on_file_read_all_text(self, name: str, extension: str) -> str:
        path = self._file_path(name, extension)
        if not path.exists():
            return ''
        return path.read_text(encoding='utf-8')


# ============================================================================
# Commands
# ============================================================================

def cmd_tokens(args) -> int:
    for token in tokenize(args.file.read_text(encoding='utf-8')):
        print(f"{token.line}:{token.col}\t{token.type}\t{token.value!r}")
    return 0


def cmd_parse(args) -> int:
    program = parse_program(args.file.read_text(encoding='utf-8'))
    print(json.dumps(ast_to_json(program), indent=2))
    return 0


def cmd_fmt(args) -> int:
    formatted = format_program(parse_program(args.file.read_text(encoding='utf-8')))
    if args.write:
        args.file.write_text(formatted, encoding='utf-8')
    else:
        print(formatted, end='')
    return 0


async def _run(args) -> int:
    config = RuntimeConfig.from_env()
    logger.debug("running %s with %r", args.file, config)
    components = load_components(args.components) if args.components else []
    host = TerminalHost(args.files_dir, trace=args.trace)
    runtime = FormScriptRuntime(components, callbacks=host.callbacks(), form_name=args.form, config=config)

    if not await runtime.load_program(args.file.read_text(encoding='utf-8'), name=args.file.name):
        return 1
    await runtime.start()
    if args.duration > 0:
        await asyncio.sleep(args.duration)
    await runtime.wait_idle()
    await runtime.stop()
    return 1 if runtime.parse_errors else 0


def cmd_run(args) -> int:
    return asyncio.run(_run(args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="formscript", description="FormScript lexer, parser and runtime.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("tokens", help="List the tokens of a source file.")
    p.add_argument("file", type=Path)
    p.set_defaults(func=cmd_tokens)

    p = sub.add_parser("parse", help="Dump the AST of a module as JSON.")
    p.add_argument("file", type=Path)
    p.set_defaults(func=cmd_parse)

    p = sub.add_parser("fmt", help="Reformat a module.")
    p.add_argument("file", type=Path)
    p.add_argument("-w", "--write", action="store_true", help="Rewrite the file in place.")
    p.set_defaults(func=cmd_fmt)

    p = sub.add_parser("run", help="Run a module in the terminal.")
    p.add_argument("file", type=Path)
    p.add_argument("--components", type=Path, help="JSON file with component declarations.")
    p.add_argument("--form", help="Form name that Me refers to.")
    p.add_argument("--duration", type=float, default=0.0, help="Seconds to keep timers running.")
    p.add_argument("--files-dir", type=Path, default=Path('.'), help="Directory for File.* calls.")
    p.add_argument("--trace", action="store_true", help="Print every property change.")
    p.set_defaults(func=cmd_run)

    return parser


def main(argv: Optional[List[str]] = None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.ERROR,
        format="%(name)s: %(message)s",
    )

    if not args.file.exists():
        print(f"Error: File '{args.file}' not found.", file=sys.stderr)
        sys.exit(1)

    try:
        code = args.func(args)
    except (FormScriptError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    sys.exit(code)


if __name__ == '__main__':
    main()
