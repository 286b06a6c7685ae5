"""
otpvault – entry point.

Usage
-----
    python main.py [COMMAND] ...

Or, if installed as a package:
    otpvault [COMMAND] ...

The CLI is interactive and colourful on stderr; the password can be piped in.
When stdout is redirected only plain results are written to it.
"""

import argparse
import logging
import os
import re
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

from core.config import VERSION, Config, default_store_path, program_name
from core.credential import Credential
from core.errors import DuplicateName, InvalidName, NotFound, VaultError
from core.totp import PERIOD, Algorithm, code_for, remaining_seconds
from core.utils import normalize_secret, validate_name
from qr.parser import build_otpauth_uri, parse_otpauth_uri
from storage.database import change_password, open_store, save_store
from ui.terminal import CodeGrid, TerminalPrompter, run_refresh_loop

logger = logging.getLogger("otpvault")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INTERRUPTED = 130


# ── Logging setup ─────────────────────────────────────────────────────────────

def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


# ── Argument parsing ──────────────────────────────────────────────────────────

COMMANDS: Dict[str, List[str]] = {
    "show": ["view"],
    "list": ["ls"],
    "add": ["insert", "entry"],
    "totp": ["temp"],
    "delete": ["remove", "rm"],
    "rename": ["move", "mv"],
    "reveal": ["secret"],
    "clip": ["copy", "cp"],
    "password": ["passwd", "pw"],
    "export": [],
    "import": [],
    "version": [],
}
_COMMAND_WORDS = {word for cmd, aliases in COMMANDS.items() for word in [cmd, *aliases]}
_GLOBAL_WITH_VALUE = {"-d", "--datafile"}
_GLOBAL_FLAGS = {"-v", "--verbose", "-V", "--version", "-h", "--help"}


def _digits(text: str) -> int:
    if text not in ("5", "6", "7", "8"):
        raise argparse.ArgumentTypeError(f"TOTP length must be 5-8, not '{text}'")
    return int(text)


def _algorithm(text: str) -> Algorithm:
    try:
        return Algorithm.parse(text)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc))


def build_parser(prog: str) -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog=prog,
        description="Manage TOTPs from the CLI. Secrets are kept in an "
                    "Argon2id + AES-256-GCM encrypted datafile.",
    )
    p.add_argument("-V", "--version", action="version", version=f"{prog} version {VERSION}")
    p.add_argument("-d", "--datafile", type=Path, help="datafile path (default: %(default)s)",
                   default=default_store_path(prog))
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging on stderr")
    sub = p.add_subparsers(dest="command", metavar="COMMAND")

    def totp_options(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("-s", "--size", type=_digits, default=6, metavar="LENGTH",
                        help="TOTP length: 5-8 (default: 6)")
        sp.add_argument("-a", "--algorithm", type=_algorithm, default=Algorithm.SHA1,
                        metavar="HASH", help="SHA1/SHA256/SHA512 (default: SHA1)")

    def force_option(sp: argparse.ArgumentParser, text: str) -> None:
        sp.add_argument("-f", "--force", action="store_true", help=text)

    def regex_options(sp: argparse.ArgumentParser) -> None:
        sp.add_argument("regex", nargs="?", default="", metavar="REGEX")
        sp.add_argument("-c", "--case", action="store_true", help="case-sensitive REGEX")

    sp = sub.add_parser("show", aliases=COMMANDS["show"], help="display TOTPs [matching REGEX]")
    regex_options(sp)
    sp.add_argument("-n", "--next", action="store_true", help="also show the next TOTP")

    sp = sub.add_parser("list", aliases=COMMANDS["list"], help="list NAMEs [matching REGEX]")
    regex_options(sp)

    sp = sub.add_parser("add", aliases=COMMANDS["add"], help="add entry NAME with SECRET")
    sp.add_argument("name", metavar="NAME")
    sp.add_argument("secret", nargs="?", metavar="SECRET", help="queried when not given")
    totp_options(sp)
    force_option(sp, "overwrite an existing NAME, no NAME length check")

    sp = sub.add_parser("totp", aliases=COMMANDS["totp"], help="show TOTP of SECRET, no datafile")
    sp.add_argument("secret", nargs="?", metavar="SECRET", help="queried when not given")
    totp_options(sp)

    sp = sub.add_parser("delete", aliases=COMMANDS["delete"], help="delete entry NAME")
    sp.add_argument("name", metavar="NAME")
    force_option(sp, "no confirmation asked")

    sp = sub.add_parser("rename", aliases=COMMANDS["rename"], help="rename entry NAME to NEWNAME")
    sp.add_argument("name", metavar="NAME")
    sp.add_argument("new_name", metavar="NEWNAME")
    force_option(sp, "no NAME length checks")

    sp = sub.add_parser("reveal", aliases=COMMANDS["reveal"], help="show SECRET of entry NAME")
    sp.add_argument("name", metavar="NAME")

    sp = sub.add_parser("clip", aliases=COMMANDS["clip"], help="put TOTP of NAME on the clipboard")
    sp.add_argument("name", metavar="NAME")

    sub.add_parser("password", aliases=COMMANDS["password"], help="change datafile password")

    sp = sub.add_parser("export", help="export otpauth URIs [to new file FILE]")
    sp.add_argument("file", nargs="?", metavar="FILE")

    sp = sub.add_parser("import", help="import otpauth URIs from FILE")
    sp.add_argument("file", metavar="FILE")
    sp.add_argument("--qr", action="store_true", help="FILE is an image with QR codes")
    force_option(sp, "overwrite existing NAMEs, no NAME length check")

    sub.add_parser("version", help="show version")
    return p


def _insert_default_command(argv: List[str]) -> List[str]:
    """Anything that is not a command word is a REGEX for ``show``."""
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg in _GLOBAL_WITH_VALUE:
            i += 2
            continue
        if arg in _GLOBAL_FLAGS or arg.startswith("--datafile="):
            i += 1
            continue
        if arg in _COMMAND_WORDS:
            return argv
        break
    return argv[:i] + ["show"] + argv[i:]


def _canonical(command: Optional[str]) -> str:
    for cmd, aliases in COMMANDS.items():
        if command == cmd or command in aliases:
            return cmd
    return "show"


# ── Live display ──────────────────────────────────────────────────────────────

def _show_live(config: Config, term: TerminalPrompter, cred: Credential) -> None:
    """Print the code once when redirected, else redraw it until Ctrl-C."""
    if config.redirected:
        try:
            print(code_for(cred))
        finally:
            cred.wipe()
        return

    p = term.palette

    def render(left: int) -> None:
        term.write(
            f"\r{p.blue} TOTP: {p.green}{code_for(cred)}{p.blue}  Next: "
            f"{p.magenta}{code_for(cred, offset=1)}{p.blue}  Validity:{p.yellow} {left:2d}"
            f"{p.blue}s  {p.reset}[Press {p.green}Ctrl-C{p.reset} to exit] ",
            end="",
        )

    def finish() -> None:
        cred.wipe()
        term.clear()

    run_refresh_loop(render, finish)


# ── Commands ──────────────────────────────────────────────────────────────────

def cmd_show(args: argparse.Namespace, config: Config, term: TerminalPrompter) -> int:
    with open_store(config, term) as store:
        names = store.names(args.regex, args.case)
        width = config.max_name_len
        if config.redirected:
            for name in names:
                cred = store.get(name)
                print(f"{code_for(cred)} ({code_for(cred, offset=1)}) {name[:width]}")
            return EXIT_OK

        if not names:
            suffix = f" matching Regex '{args.regex}'" if args.regex else ""
            term.error("No entries" + suffix)
            return EXIT_OK

        grid = CodeGrid(len(names), width, show_next=args.next)
        p = term.palette

        def render(left: int) -> None:
            cells = [
                grid.cell(code_for(store.get(n)), code_for(store.get(n), offset=1), n, p)
                for n in names
            ]
            term.clear()
            term.write(p.blue + grid.header() + p.reset)
            for row in grid.rows(cells):
                term.write(row)
            term.write(
                f"\r{p.blue} Left:{p.yellow} {left:2d}{p.blue}s  {p.reset}"
                f"[exit: {p.green}Ctrl-C{p.reset}]",
                end="",
            )

        def finish() -> None:
            store.wipe()
            term.clear()

        run_refresh_loop(render, finish)
    return EXIT_OK


def cmd_list(args: argparse.Namespace, config: Config, term: TerminalPrompter) -> int:
    with open_store(config, term) as store:
        names = store.names(args.regex, args.case)
    if not names and not config.redirected:
        suffix = f" matching Regex '{args.regex}'" if args.regex else ""
        term.error("No entries" + suffix)
        return EXIT_OK
    for name in names:
        print(name)
    return EXIT_OK


def cmd_add(args: argparse.Namespace, config: Config, term: TerminalPrompter) -> int:
    # Reject bad input before the datafile is touched
    validate_name(args.name, config.max_name_len, args.force)
    secret = normalize_secret(args.secret) if args.secret else None

    with open_store(config, term) as store:
        exists = args.name in store
        if exists and not args.force:
            if not term.confirm(f"Entry '{args.name}' exists, confirm change [y/N] "):
                term.error("Entry not changed")
                return EXIT_OK
        if secret is None:
            secret = term.ask_secret()
            if secret is None:
                term.error(f"Adding entry '{args.name}' cancelled")
                return EXIT_OK

        cred = Credential.from_base32(args.name, secret, args.size, args.algorithm)
        store.add(cred, overwrite=True, force=args.force)
        save_store(store)
        p = term.palette
        action = "changed" if exists else "added"
        term.write(f"{p.green} Entry '{p.yellow}{args.name}{p.green}' {action}{p.reset}")
        _show_live(config, term, cred)
    return EXIT_OK


def cmd_totp(args: argparse.Namespace, config: Config, term: TerminalPrompter) -> int:
    secret = normalize_secret(args.secret) if args.secret else term.ask_secret()
    if secret is None:
        return EXIT_OK
    cred = Credential.from_base32("", secret, args.size, args.algorithm)
    try:
        _show_live(config, term, cred)
    finally:
        cred.wipe()
    return EXIT_OK


def cmd_delete(args: argparse.Namespace, config: Config, term: TerminalPrompter) -> int:
    with open_store(config, term) as store:
        store.get(args.name)
        if not args.force and not term.confirm(f"Sure to delete entry '{args.name}'? [y/N] "):
            term.error("Entry not deleted")
            return EXIT_OK
        store.delete(args.name)
        save_store(store)
    term.info(f"Entry '{args.name}' deleted")
    return EXIT_OK


def cmd_rename(args: argparse.Namespace, config: Config, term: TerminalPrompter) -> int:
    if not args.force:
        validate_name(args.name, config.max_name_len)
    validate_name(args.new_name, config.max_name_len, args.force)
    with open_store(config, term) as store:
        store.rename(args.name, args.new_name, force=args.force)
        save_store(store)
    term.info(f"Entry '{args.name}' renamed to '{args.new_name}'")
    return EXIT_OK


def cmd_reveal(args: argparse.Namespace, config: Config, term: TerminalPrompter) -> int:
    with open_store(config, term) as store:
        cred = store.get(args.name)
        uri = build_otpauth_uri(cred)
        if config.redirected:
            print(uri)
            return EXIT_OK

        p = term.palette
        term.write(f"{p.blue}{cred.name}: {p.yellow}{cred.secret_b32}{p.reset}")
        term.write(uri)
        term.write(f"{p.reset}[Press {p.green}Ctrl-C{p.reset} to exit] ", end="")

        def finish() -> None:
            store.wipe()
            term.clear()

        run_refresh_loop(lambda left: None, finish)
    return EXIT_OK


def cmd_clip(args: argparse.Namespace, config: Config, term: TerminalPrompter) -> int:
    from ui.clipboard import copy_code

    with open_store(config, term) as store:
        code = code_for(store.get(args.name))
    left = remaining_seconds(PERIOD)
    p = term.palette
    term.write(
        f"{p.green}TOTP of {p.yellow}'{args.name}'{p.green} copied to clipboard, "
        f"valid for{p.yellow} {left} {p.green}s{p.reset}"
    )
    copy_code(code, left)
    return EXIT_OK


def cmd_password(args: argparse.Namespace, config: Config, term: TerminalPrompter) -> int:
    with open_store(config, term) as store:
        term.info("Changing password")
        change_password(store, term, config.password_retries)
    term.info("Password change successful")
    return EXIT_OK


def cmd_export(args: argparse.Namespace, config: Config, term: TerminalPrompter) -> int:
    with open_store(config, term) as store:
        lines = sorted(build_otpauth_uri(cred) + "\n" for cred in store.entries.values())
    if not args.file:
        sys.stdout.write("".join(lines))
        return EXIT_OK

    fd = os.open(args.file, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o400)
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.writelines(lines)
    term.info(f"File exported: {args.file}")
    return EXIT_OK


class ImportLineError(VaultError):
    def __init__(self, line: Optional[int], reason: object) -> None:
        super().__init__(f"{reason} on line {line}" if line else str(reason))


def _read_import_lines(args: argparse.Namespace) -> List[str]:
    if args.qr:
        from qr.scanner import scan_image_file

        try:
            return scan_image_file(args.file)
        except ValueError as exc:
            raise ImportLineError(None, exc) from None
    with open(args.file, "rb") as fh:
        raw_lines = fh.read().splitlines()
    lines = []
    for n, raw in enumerate(raw_lines, start=1):
        try:
            lines.append(raw.decode("utf-8"))
        except UnicodeDecodeError:
            raise ImportLineError(n, "Not UTF-8 text") from None
    return lines


def cmd_import(args: argparse.Namespace, config: Config, term: TerminalPrompter) -> int:
    lines = _read_import_lines(args)
    p = term.palette
    with open_store(config, term) as store:
        staged: List[Credential] = []
        ignored: Set[str] = set()
        try:
            for n, line in enumerate(lines, start=1):
                if not line.strip():
                    continue
                try:
                    parsed = parse_otpauth_uri(line)
                    cred = parsed.to_credential()
                except ValueError as exc:
                    raise ImportLineError(n, exc) from None
                staged.append(cred)
                ignored.update(parsed.ignored_keys)
                if parsed.issuer_seen:
                    ignored.add("issuer")
                if cred.name in store and not args.force:
                    raise ImportLineError(
                        n, f"Entry '{cred.name}' exists, force overwrite with -f/--force"
                    )
                if len(cred.name) > config.max_name_len:
                    if not args.force:
                        raise ImportLineError(n, f"NAME longer than {config.max_name_len}")
                    term.write(
                        f"{p.yellow}WARNING{p.reset}: NAME longer than "
                        f"{config.max_name_len} on line {n}"
                    )
        except ImportLineError:
            for cred in staged:
                cred.wipe()
            raise

        for cred in staged:
            store.add(cred, overwrite=True, force=True)
        save_store(store)

    for key in sorted(ignored):
        term.write(f"{p.green}INFO{p.reset}: key '{key}' ignored")
    term.info(f"All {len(staged)} entries in '{args.file}' successfully imported")
    return EXIT_OK


def cmd_version(args: argparse.Namespace, config: Config, term: TerminalPrompter) -> int:
    term.write(f"{program_name()} version {VERSION}")
    return EXIT_OK


HANDLERS: Dict[str, Callable[[argparse.Namespace, Config, TerminalPrompter], int]] = {
    "show": cmd_show,
    "list": cmd_list,
    "add": cmd_add,
    "totp": cmd_totp,
    "delete": cmd_delete,
    "rename": cmd_rename,
    "reveal": cmd_reveal,
    "clip": cmd_clip,
    "password": cmd_password,
    "export": cmd_export,
    "import": cmd_import,
    "version": cmd_version,
}


# ── Main ──────────────────────────────────────────────────────────────────────

def main(argv: Optional[List[str]] = None, term: Optional[TerminalPrompter] = None) -> int:
    prog = program_name()
    parser = build_parser(prog)
    args = parser.parse_args(_insert_default_command(list(sys.argv[1:] if argv is None else argv)))
    command = _canonical(args.command)

    _setup_logging(args.verbose)
    config = Config(store_path=args.datafile)
    term = term or TerminalPrompter(config)
    logger.debug("Command %s on %s", command, config.store_path)

    try:
        return HANDLERS[command](args, config, term)
    except (DuplicateName, NotFound) as exc:
        term.error(str(exc))
    except InvalidName as exc:
        term.fatal("Invalid NAME", exc)
    except re.error as exc:
        term.fatal("Invalid REGEX", exc)
    except VaultError as exc:
        term.fatal(f"Failure on '{command}'", exc)
    except OSError as exc:
        term.fatal(f"File error on '{command}'", exc)
    except (RuntimeError, ValueError) as exc:
        term.fatal(f"Failure on '{command}'", exc)
    except KeyboardInterrupt:
        term.write("")
        logger.debug("Interrupted during '%s'", command)
        return EXIT_INTERRUPTED
    return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
