"""
CLI for Noteflow.

Minimal CLI using stdlib for fast startup.
Subcommands are imported lazily to avoid startup overhead.

Usage:
    noteflow explain --status 429 "Rate limit exceeded"
    noteflow ask "Summarize my week"
    noteflow --help
"""

import logging
import os
import sys


def print_help() -> None:
    """Print help message."""
    print("""noteflow - resilient LLM calls for your notes

Commands:
    noteflow explain [options] <message>   Classify an error and show what the user would see
        --status N                         HTTP status code of the error
        --locale xx                        Message language (en, zh)
    noteflow ask <prompt>                  Send a prompt to the LLM (with retry)
    noteflow config                        Show the effective retry policy

Options:
    noteflow --help, -h                    Show this help
    noteflow --version, -v                 Show version

Examples:
    noteflow explain --status 401 "Invalid API key"
    noteflow explain "connect ECONNREFUSED 127.0.0.1:443"
    noteflow ask "Suggest three tags for: redis caching notes"

Retry settings come from ~/.config/noteflow/config.toml [retry]
or NOTEFLOW_MAX_RETRY_ATTEMPTS / NOTEFLOW_RETRY_* env vars.""")


def print_version() -> None:
    """Print version."""
    from noteflow import __version__
    print(f"noteflow {__version__}")


def setup_logging() -> None:
    level = os.environ.get("NOTEFLOW_LOG_LEVEL", "WARNING").upper()
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, level, logging.WARNING),
    )


def cmd_explain(args: list[str]) -> int:
    """Classify an error message and print the user-facing text."""
    from noteflow.errors import classify
    from noteflow.messages import format_user_message

    status = None
    locale = "en"
    words = []

    i = 0
    while i < len(args):
        if args[i] == "--status" and i + 1 < len(args):
            try:
                status = int(args[i + 1])
            except ValueError:
                print(f"Error: --status expects a number, got {args[i + 1]!r}", file=sys.stderr)
                return 1
            i += 2
        elif args[i] == "--locale" and i + 1 < len(args):
            locale = args[i + 1]
            i += 2
        else:
            words.append(args[i])
            i += 1

    message = " ".join(words)
    if not message and status is None:
        print("Usage: noteflow explain [--status N] [--locale xx] <message>", file=sys.stderr)
        return 1

    error = {"status": status, "message": message or f"HTTP {status}"}
    classification = classify(error)

    print(f"Kind:      {classification.kind.value}")
    print(f"Status:    {classification.http_status if classification.http_status is not None else '-'}")
    print(f"Retryable: {'yes' if classification.retryable else 'no'}")
    print(f"Detail:    {classification.detail}")
    print()
    print(format_user_message(classification, locale))
    return 0


def cmd_ask(args: list[str]) -> int:
    """Send a prompt to the LLM and print the reply."""
    import asyncio

    from noteflow.config import load_config
    from noteflow.llm import LLMClient
    from noteflow.messages import format_user_message

    prompt = " ".join(args).strip()
    if not prompt:
        print("Error: Empty prompt", file=sys.stderr)
        return 1

    config = load_config()
    try:
        client = LLMClient(config)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        reply = asyncio.run(client.complete(prompt))
    except Exception as e:
        # Details are in the log; the user only sees the mapped message
        logging.getLogger(__name__).debug("ask failed", exc_info=e)
        locale = config.get("noteflow", {}).get("locale", "en")
        print(format_user_message(e, locale), file=sys.stderr)
        return 1

    print(reply)
    return 0


def cmd_config() -> int:
    """Show the effective retry policy."""
    from pydantic import ValidationError

    from noteflow.config import get_config_path
    from noteflow.retry import RetryPolicy

    try:
        policy = RetryPolicy.from_config()
    except ValidationError as e:
        print(f"Error: invalid [retry] settings: {e}", file=sys.stderr)
        return 1

    print(f"Config file: {get_config_path()}")
    print("Retry policy")
    print("-" * 30)
    print(f"max_attempts:       {policy.max_attempts}")
    print(f"initial_delay:      {policy.initial_delay:g} ms")
    print(f"backoff_multiplier: {policy.backoff_multiplier:g}")
    print(f"max_delay:          {policy.max_delay:g} ms")
    print(f"jitter:             {'on' if policy.jitter else 'off'}")
    return 0


def main() -> int:
    """Main entry point."""
    args = sys.argv[1:]

    if not args or args[0] in ("--help", "-h", "help"):
        print_help()
        return 0

    if args[0] in ("--version", "-v", "version"):
        print_version()
        return 0

    setup_logging()

    command = args[0]

    if command == "explain":
        return cmd_explain(args[1:])

    if command == "ask":
        return cmd_ask(args[1:])

    if command == "config":
        return cmd_config()

    print(f"Unknown command: {command}. See 'noteflow --help'.", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
