"""
Command line front end.

    ftpcore --host ftp.example.com --user bob put report.csv /in/report.csv
    FTP_HOST=ftp.example.com ftpcore ls /in

Connection settings come from FTP_* environment variables and can be
overridden with flags.
"""

import argparse
import logging
import os
import re
import subprocess
import sys

from .client import FTPClient
from .config import ClientConfig, configure_logging
from .suggest import get_suggestion

logger = logging.getLogger(__name__)

SUBCOMMANDS = ("put", "get", "rm", "mv", "mkdir", "rmdir", "chmod", "size", "exists", "ls", "ui")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2


class _SuggestingParser(argparse.ArgumentParser):
    def error(self, message):
        match = re.search(r"invalid choice: '?([^'\s]+)'?", message)
        if match:
            suggestion = get_suggestion(match.group(1), SUBCOMMANDS)
            if suggestion:
                message = f"{message}\nTry with '{suggestion}'"
        super().error(message)


def _octal(value: str) -> int:
    try:
        return int(value, 8)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid octal mode: {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = _SuggestingParser(prog="ftpcore", description="Small FTP client")
    parser.add_argument("--host", help="Server host (FTP_HOST)")
    parser.add_argument("--port", type=int, help="Server port (FTP_PORT, default 21)")
    parser.add_argument("--user", dest="username", help="User name (FTP_USER)")
    parser.add_argument("--password", help="Password (FTP_PASSWORD)")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--passive", dest="passive", action="store_const", const=True, help="Use PASV (FTP_PASSIVE)")
    mode.add_argument("--active", dest="passive", action="store_const", const=False, help="Use PORT")
    parser.add_argument("--timeout", type=float, help="Socket timeout in seconds (FTP_TIMEOUT)")
    parser.add_argument("--log-level", default=None, help="Logging level (FTPCORE_LOG_LEVEL)")

    sub = parser.add_subparsers(dest="command", metavar="command")
    sub.required = True

    put = sub.add_parser("put", help="Upload a local file")
    put.add_argument("local")
    put.add_argument("remote", nargs="?")
    put.add_argument("--text", action="store_true", help="ASCII transfer (TYPE A)")

    get = sub.add_parser("get", help="Download a remote file")
    get.add_argument("remote")
    get.add_argument("local", nargs="?")
    get.add_argument("--text", action="store_true", help="ASCII transfer (TYPE A)")

    rm = sub.add_parser("rm", help="Delete a remote file")
    rm.add_argument("remote")

    mv = sub.add_parser("mv", help="Rename or move a remote file or directory")
    mv.add_argument("source")
    mv.add_argument("target")

    mkdir = sub.add_parser("mkdir", help="Create a remote directory")
    mkdir.add_argument("path")

    rmdir = sub.add_parser("rmdir", help="Remove a remote directory")
    rmdir.add_argument("path")

    chmod = sub.add_parser("chmod", help="Set permissions on a remote path")
    chmod.add_argument("mode", type=_octal, help="Octal mode, e.g. 644")
    chmod.add_argument("path")

    size = sub.add_parser("size", help="Print the size of a remote file")
    size.add_argument("path")

    exists = sub.add_parser("exists", help="Exit 0 if the remote directory exists")
    exists.add_argument("path")

    ls = sub.add_parser("ls", help="List a remote directory")
    ls.add_argument("path", nargs="?", default="")
    ls.add_argument("-l", "--long", action="store_true", help="LIST instead of NLST")

    ui = sub.add_parser("ui", help="Start the Streamlit client")
    ui.add_argument("--address", default="0.0.0.0")
    ui.add_argument("--ui-port", type=int, default=8501)

    return parser


def start_streamlit_client(host: str = '0.0.0.0', port: int = 8501):
    """Replaces the current process with `streamlit run` on the bundled app."""
    app = os.path.join(os.path.dirname(__file__), 'ui', 'app.py')
    cmd = [
        'streamlit',
        'run',
        app,
        f'--server.port={port}',
        f'--server.address={host}',
        '--logger.level=info',
    ]
    logger.info(f"Starting Streamlit FTP Client UI on {host}:{port}...")
    try:
        os.execvp(cmd[0], cmd)
    except OSError as e:
        logger.error(f"Failed to exec Streamlit: {e}")
        # Fallback to subprocess.run for better diagnostics
        return subprocess.run(cmd).returncode


def run(args) -> int:
    if args.command == "ui":
        return start_streamlit_client(args.address, args.ui_port) or EXIT_OK

    config = ClientConfig.from_env().override(host=args.host, port=args.port, username=args.username,
                                              password=args.password, passive=args.passive,
                                              timeout=args.timeout)
    logger.debug(f"Using {config}")
    client = FTPClient.from_config(config)

    if args.command == "put":
        remote = args.remote or os.path.basename(args.local)
        outcome = client.upload(args.local, remote, "text" if args.text else "binary")
        if outcome:
            print(f"{args.local} -> {remote} ({outcome.payload} bytes)")
    elif args.command == "get":
        local = args.local or os.path.basename(args.remote)
        outcome = client.download(args.remote, local, "text" if args.text else "binary")
        if outcome:
            print(f"{args.remote} -> {local} ({outcome.payload} bytes)")
    elif args.command == "rm":
        outcome = client.delete(args.remote)
    elif args.command == "mv":
        outcome = client.rename(args.source, args.target)
    elif args.command == "mkdir":
        outcome = client.make_directory(args.path)
    elif args.command == "rmdir":
        outcome = client.remove_directory(args.path)
    elif args.command == "chmod":
        outcome = client.set_permissions(args.path, args.mode)
    elif args.command == "size":
        outcome = client.file_size(args.path)
        if outcome:
            print(outcome.payload)
    elif args.command == "exists":
        outcome = client.directory_exists(args.path)
        if outcome:
            return EXIT_OK if outcome.payload else EXIT_FAILED
    elif args.command == "ls":
        outcome = client.list_directory(args.path, detailed=args.long)
        if outcome:
            for entry in outcome.payload:
                print(entry)
    else:
        raise AssertionError(f"unhandled command {args.command}")

    if not outcome:
        print(f"Error: {outcome.description}", file=sys.stderr)
        if outcome.error is not None:
            print(f"  {outcome.error}", file=sys.stderr)
        return EXIT_FAILED
    return EXIT_OK


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level)
    try:
        return run(args)
    except ValueError as e:
        # bad FTP_* environment values
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
