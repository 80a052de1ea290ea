#!/usr/bin/env python3
"""
Cadence - interactive text front end.
Entry point for running the command runtime from a terminal.

Usage:
    python run.py                          # Deterministic rule-based generator
    python run.py --backend ollama         # Stream from a local Ollama model
    python run.py --confirm-by-voice       # Accept "yes"/"no" replies to confirmations

Commands inside the prompt:
    /yes     confirm the pending action
    /no      cancel the pending action
    /clear   clear the transcript
    /quit    exit
"""
import argparse
import asyncio
import sys

from rich.console import Console

from cadence.core.config import Config
from cadence.core.logger import get_logger, init_logger

console = Console()


def parse_args(argv=None):
    """Parse command line arguments"""
    parser = argparse.ArgumentParser(
        description="Cadence - natural-language command runtime",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run.py                               # Rule-based generator
  python run.py --backend ollama              # Local Ollama model
  python run.py --ollama-model llama3.1:latest
  python run.py --log-level DEBUG --quiet     # Debug output without generator chatter
        """
    )

    parser.add_argument(
        "--backend",
        type=str,
        default=Config.BACKEND,
        choices=["rules", "ollama"],
        help=f"Text generator backend (default: {Config.BACKEND})"
    )

    parser.add_argument(
        "--ollama-url",
        type=str,
        default=Config.OLLAMA_BASE_URL,
        help=f"Ollama API base URL (default: {Config.OLLAMA_BASE_URL})"
    )

    parser.add_argument(
        "--ollama-model",
        type=str,
        default=Config.OLLAMA_MODEL,
        help=f"Ollama model name (default: {Config.OLLAMA_MODEL})"
    )

    parser.add_argument(
        "--llm-timeout",
        type=int,
        default=Config.LLM_TIMEOUT,
        help=f"Model request timeout in seconds (default: {Config.LLM_TIMEOUT})"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=Config.LOG_LEVEL,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help=f"Logging level (default: {Config.LOG_LEVEL})"
    )

    parser.add_argument(
        "--quiet",
        action="store_true",
        default=Config.QUIET_MODE,
        help="Hide generator, parser and state-transition log lines"
    )

    parser.add_argument(
        "--confirm-by-voice",
        action="store_true",
        default=Config.CONFIRM_BY_VOICE,
        help="Treat yes/no replies as confirm/cancel while an action is pending"
    )

    return parser.parse_args(argv)


def build_generator(args):
    """Create the text generator selected on the command line"""
    if args.backend == "ollama":
        from cadence.brain.ollama_client import OllamaClient
        from cadence.brain.ollama_generator import OllamaGenerator

        generator = OllamaGenerator(
            client=OllamaClient(base_url=args.ollama_url, timeout=args.llm_timeout),
            model=args.ollama_model,
        )
        generator.check_available()
        return generator

    from cadence.brain.rule_generator import RuleBasedGenerator
    return RuleBasedGenerator()


def print_entry(event, payload):
    """Observer that echoes assistant transcript entries"""
    if event != "transcript" or payload is None or payload.is_from_user:
        return
    style = "red" if payload.text.startswith("Error:") else "cyan"
    if payload.requires_confirmation:
        style = "yellow"
    console.print(f"Cadence: {payload.text}", style=style, markup=False, highlight=False)


async def repl(runtime) -> None:
    """Read commands from stdin until /quit or EOF"""
    loop = asyncio.get_running_loop()
    while True:
        try:
            line = await loop.run_in_executor(None, input, "You: ")
        except EOFError:
            return

        command = line.strip().lower()
        if command == "/quit":
            return
        if command == "/yes":
            await runtime.confirm_pending()
        elif command == "/no":
            runtime.cancel_pending()
        elif command == "/clear":
            runtime.clear_transcript()
            console.print("Transcript cleared.", style="dim")
        else:
            await runtime.submit_input(line)


def main(argv=None):
    """Main entry point"""
    args = parse_args(argv)

    init_logger(args.log_level, quiet_mode=args.quiet)
    logger = get_logger()

    print("\n" + "=" * 60)
    print("  Cadence - Command Runtime")
    print("=" * 60)
    print(f"  Backend: {args.backend}")
    if args.backend == "ollama":
        print(f"  Model: {args.ollama_model}")
        print(f"  URL: {args.ollama_url}")
    print(f"  Confirm by voice: {args.confirm_by_voice}")
    print(f"  Log Level: {args.log_level}")
    print("  Commands: /yes /no /clear /quit")
    print("=" * 60 + "\n")

    from cadence.core.runtime import DispatchRuntime
    from cadence.tools import build_default_registry

    try:
        runtime = DispatchRuntime(
            build_generator(args),
            build_default_registry(),
            confirm_by_voice=args.confirm_by_voice,
        )
        runtime.subscribe(print_entry)
        asyncio.run(repl(runtime))
        return 0

    except KeyboardInterrupt:
        logger.info("Shutdown requested by user")
        return 0

    except Exception as e:
        logger.error(f"Fatal error: {e}")
        import traceback
        logger.error(traceback.format_exc())
        return 1


if __name__ == "__main__":
    sys.exit(main())
