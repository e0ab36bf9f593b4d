# SPDX-License-Identifier: MIT
# Copyright (c) 2025-2026 Soroush Yousefpour
"""
Command line entry point for Local Dictation.

Usage:
    local-dictation                   Run the dictation service (default)
    local-dictation run               Same as above
    local-dictation status            Is the service running?
    local-dictation transcribe <wav>  Transcribe (and refine) a recording
    local-dictation config [path]     Show effective settings or the config path
    local-dictation version           Show version
"""

import contextlib
import fcntl
import sys
from pathlib import Path

from .config import CONFIG_FILE, get_config
from .errors import BackendError, InvalidArtifactError
from .utils import C_BOLD, C_CYAN, C_DIM, C_GREEN, C_RED, C_RESET, C_YELLOW, set_verbose

PROG = "local-dictation"


def _is_running() -> bool:
    """Check whether another process holds the service lock."""
    from .app import LOCK_FILE
    if not LOCK_FILE.exists():
        return False
    try:
        with open(LOCK_FILE, "r+") as lf:
            fcntl.flock(lf, fcntl.LOCK_EX | fcntl.LOCK_NB)
            # Got lock - service is not running (stale lock)
            fcntl.flock(lf, fcntl.LOCK_UN)
        return False
    except FileNotFoundError:
        return False
    except OSError:
        return True


def cmd_run():
    """Run the service in the foreground."""
    from .app import service_main
    service_main()


def cmd_status():
    """Show service status."""
    config = get_config()
    if _is_running():
        print(f"  {C_GREEN}{C_BOLD}Running{C_RESET}")
    else:
        print(f"  {C_DIM}Stopped{C_RESET}")
    print(f"  {C_DIM}hotkey: {C_RESET} {config.hotkey.chord}")
    print(f"  {C_DIM}engine: {C_RESET} {config.transcription.engine}")
    print(f"  {C_DIM}config: {C_RESET} {CONFIG_FILE}")


def cmd_transcribe(args: list):
    """Transcribe a WAV file and print the text."""
    raw = False
    file_path = None
    for arg in args:
        if arg == "--raw":
            raw = True
        elif file_path is None:
            file_path = arg
        else:
            print(f"{C_RED}Unexpected argument: {arg}{C_RESET}", file=sys.stderr)
            sys.exit(1)

    if not file_path:
        print(f"{C_RED}No file provided.{C_RESET}", file=sys.stderr)
        print(f"{C_DIM}Usage: {PROG} transcribe <file.wav> [--raw]{C_RESET}", file=sys.stderr)
        sys.exit(1)

    from .artifact import validate_wav
    from .refiner import Refiner
    from .transcriber import Transcriber

    config = get_config()
    set_verbose(config.logging.verbose)
    path = Path(file_path).resolve()

    # Progress logs go to stderr so stdout carries only the transcript
    with contextlib.redirect_stdout(sys.stderr):
        try:
            validate_wav(path, config.audio.min_duration)
            result = Transcriber(config.transcription).transcribe(path)
        except (InvalidArtifactError, BackendError) as e:
            print(f"{C_RED}{e.user_message()}: {e}{C_RESET}", file=sys.stderr)
            sys.exit(1)

        if result.is_empty:
            print(f"{C_YELLOW}No speech detected{C_RESET}", file=sys.stderr)
            sys.exit(1)

        text = result.text
        if not raw and config.refinement.enabled:
            refiner = Refiner(config.refinement)
            try:
                refined = refiner.refine(text)
            finally:
                refiner.close()
            if refined.succeeded:
                text = refined.text
            else:
                print(f"{C_YELLOW}Refinement failed, printing raw transcript{C_RESET}", file=sys.stderr)

    print(text)


def cmd_config(args: list):
    """Show effective settings or print the config path."""
    if args and args[0] == "path":
        print(CONFIG_FILE)
        return
    if args and args[0] != "show":
        print(f"{C_RED}Unknown config subcommand: {args[0]}{C_RESET}", file=sys.stderr)
        print(f"{C_DIM}Usage: {PROG} config [show|path]{C_RESET}", file=sys.stderr)
        sys.exit(1)

    config = get_config()

    def _on_off(v):
        return f"{C_GREEN}on{C_RESET}" if v else f"{C_DIM}off{C_RESET}"

    refinement = config.refinement
    print()
    print(f"  {C_DIM}Hotkey{C_RESET}      {C_CYAN}{config.hotkey.chord}{C_RESET}")
    print(f"  {C_DIM}Engine{C_RESET}      {C_CYAN}{config.transcription.engine}{C_RESET}  "
          f"{C_DIM}({config.transcription.language}, {config.transcription.model.name}, "
          f"{config.transcription.timeout:g}s){C_RESET}")
    print(f"  {C_DIM}Refinement{C_RESET}  {_on_off(refinement.enabled)}  "
          f"{C_DIM}{refinement.backend}, {refinement.timeout:g}s, "
          f"gpu {'on' if refinement.gpu_acceleration else 'off'}{C_RESET}")
    print(f"  {C_DIM}Glossary{C_RESET}    {_on_off(refinement.use_glossary)}  {C_DIM}{refinement.glossary_path}{C_RESET}")
    print(f"  {C_DIM}History{C_RESET}     {config.history.path}")
    print(f"  {C_DIM}Notify{C_RESET}      {_on_off(config.ui.notifications_enabled)}")
    print(f"  {C_DIM}Verbose{C_RESET}     {_on_off(config.logging.verbose)}")
    print()
    print(f"  {C_DIM}{CONFIG_FILE}{C_RESET}")
    print()


def cmd_version():
    """Show version."""
    try:
        from local_dictation import __version__
        print(f"Local Dictation {__version__}")
    except Exception:
        print("Local Dictation (version unknown)")


def _print_help():
    """Print grouped help listing."""
    groups = [
        ("Service", [
            (f"{PROG} [run]", "Run the dictation service"),
            (f"{PROG} status", "Check whether the service is running"),
        ]),
        ("Voice", [
            (f"{PROG} transcribe <wav> [--raw]", "Transcribe a recording, refine unless --raw"),
        ]),
        ("Settings", [
            (f"{PROG} config [path]", "Show effective settings, or the config path"),
            (f"{PROG} version", "Show version"),
        ]),
    ]
    width = max(len(c) for _, cmds in groups for c, _ in cmds)
    for group_name, cmds in groups:
        print(f"  {C_BOLD}{group_name}{C_RESET}")
        for cmd, desc in cmds:
            print(f"    {C_CYAN}{cmd:<{width}}{C_RESET}  {C_DIM}{desc}{C_RESET}")
        print()


def cli_main(argv=None):
    """Entry point for the local-dictation CLI."""
    args = sys.argv[1:] if argv is None else list(argv)

    if not args:
        cmd_run()
        return

    cmd = args[0]
    rest = args[1:]

    if cmd == "run":
        cmd_run()
    elif cmd == "status":
        cmd_status()
    elif cmd == "transcribe":
        cmd_transcribe(rest)
    elif cmd == "config":
        cmd_config(rest)
    elif cmd == "version":
        cmd_version()
    elif cmd in ("-h", "--help", "help"):
        _print_help()
    else:
        print(f"{C_RED}Unknown command: {cmd}{C_RESET}", file=sys.stderr)
        print(f"{C_DIM}Run '{PROG} help' for usage.{C_RESET}", file=sys.stderr)
        sys.exit(1)
