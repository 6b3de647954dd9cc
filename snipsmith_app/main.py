import sys
import os
import logging
import argparse
import asyncio
import threading
import tempfile

import socket

from snipsmith.commands import CommandProcessor
from snipsmith.config import ConfigManager
from snipsmith.context import ClipboardReader, DesktopSiteInfo
from snipsmith.history import ClipboardHistory
from snipsmith.processing import TextExpander

# Setup logging
logging.basicConfig(level=logging.INFO,
                    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger("Snipsmith")


def _instance_address():
    if sys.platform == "linux":
        # Abstract namespace; the kernel drops it with the process
        return "\0snipsmith_listener"
    return os.path.join(tempfile.gettempdir(), f"snipsmith-{os.getuid()}.sock")


def _listener_alive(address):
    check_sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        check_sock.connect(address)
        return True
    except (ConnectionRefusedError, FileNotFoundError):
        return False
    finally:
        check_sock.close()


def ensure_single_instance():
    """Holds a unix socket for the life of the listener; exits if another listener has it."""
    address = _instance_address()
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.bind(address)
    except OSError:
        if address.startswith("\0") or _listener_alive(address):
            sock.close()
            logger.error("Another snipsmith listener is already running.")
            sys.exit(1)
        logger.info(f"Removing stale socket {address}")
        os.unlink(address)
        sock.bind(address)

    sock.listen(1)
    logger.debug(f"Single instance socket bound: {address!r}")
    return sock


def parse_form_args(pairs):
    """Turns ["name=Ada", "urgent=true"] into a form data dict."""
    form_data = {}
    for pair in pairs or []:
        name, sep, value = pair.partition("=")
        if not sep or not name.strip():
            raise ValueError(f"Expected name=value, got '{pair}'")
        value = value.strip()
        if value.lower() in ("true", "false"):
            form_data[name.strip()] = value.lower() == "true"
        else:
            form_data[name.strip()] = value
    return form_data


def build_processor(config_manager):
    config = config_manager.get()
    return CommandProcessor(
        clipboard=ClipboardReader(config_manager),
        history=ClipboardHistory(config.clipboard_history_size),
        site=DesktopSiteInfo(),
    )


def run_expand(config_manager, text, form_data):
    expander = TextExpander(config_manager, processor=build_processor(config_manager))
    resolved = asyncio.run(expander.resolve(text, form_data))
    if resolved is None:
        logger.error("Expansion aborted (missing form values).")
        return 1

    if not resolved.is_chunked:
        print(resolved.text)
        if resolved.cursor_offset is not None:
            print(f"[cursor at {resolved.cursor_offset}]")
        return 0

    for chunk, action in resolved.pairs():
        if chunk:
            print(repr(chunk))
        if action is not None:
            suffix = f":{action.options}" if action.options else ""
            print(f"<{action.kind}{suffix}>")
    return 0


def run_listener(config_manager):
    from PySide6.QtWidgets import QApplication

    from snipsmith_app.form_dialog import FormRequestBridge
    from snipsmith_app.keystrokes import KeystrokeSurface
    from snipsmith_app.listener import get_manager

    app = QApplication(sys.argv)
    app.setQuitOnLastWindowClosed(False)

    # Expansions run on their own loop so Qt keeps the main thread
    loop = asyncio.new_event_loop()
    loop_thread = threading.Thread(target=loop.run_forever, daemon=True)
    loop_thread.start()

    bridge = FormRequestBridge()
    expander = TextExpander(
        config_manager,
        processor=build_processor(config_manager),
        form_collector=bridge.collect,
    )
    surface = KeystrokeSurface(config_manager)
    manager = get_manager(expander, surface, loop)
    manager.start()

    try:
        return app.exec()
    finally:
        manager.stop()
        loop.call_soon_threadsafe(loop.stop)


def main():
    parser = argparse.ArgumentParser(description="Snipsmith - Snippet Text Expander")
    parser.add_argument("--listen", action="store_true", help="Watch typing and expand snippet triggers")
    parser.add_argument("--expand", type=str, metavar="TEXT", help="Resolve TEXT as an expansion and print it")
    parser.add_argument("--form", action="append", metavar="NAME=VALUE", help="Form value for --expand (repeatable)")
    parser.add_argument("--list-handlers", action="store_true", help="Show replacement handlers by priority")
    parser.add_argument("--debug", action="store_true", help="Verbose handler logging")

    args = parser.parse_args()

    config_manager = ConfigManager()
    config = config_manager.get()
    if args.debug:
        config.debug = True
    if config.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.list_handlers:
        expander = TextExpander(config_manager)
        for line in expander.registry.list_handlers():
            print(line)
        return 0

    if args.expand is not None:
        try:
            form_data = parse_form_args(args.form)
        except ValueError as e:
            parser.error(str(e))
        return run_expand(config_manager, args.expand, form_data)

    if args.listen:
        # Check single instance only for the listener
        sock = ensure_single_instance()  # noqa: F841
        return run_listener(config_manager)

    # Default if no args
    parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
