# Self-Improving Coding Agent
# Copyright (c) 2025 Maxime Robeyns
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.
"""
Main entrypoint when running the agent with `python -m dsc_agent`.

    python -m dsc_agent                          interactive mode (default)
    python -m dsc_agent run "<task>"             single task
    python -m dsc_agent pipe "<task>"            analysis -> implementation -> review
    python -m dsc_agent ask "<question>"         web research with the general agent
    python -m dsc_agent multi "<task>" "<task>"  independent tasks in parallel
    python -m dsc_agent models                   list the model catalogue
"""

import sys
import asyncio
import argparse

from dotenv import load_dotenv

from . import __version__


def setup_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dsc_agent", description="An autonomous coding agent for the terminal"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    # Shared by every subcommand
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--model", "-m", type=str, default=None, help="Model id (default: DSC_MODEL or deepseek-v3.2)"
    )
    common.add_argument(
        "--max-steps", type=int, default=None, help="Step budget for each agent loop"
    )
    common.add_argument(
        "--project",
        type=str,
        default=None,
        help="Project directory the agent works in (default: current directory)",
    )
    common.add_argument(
        "--verbose", "-v", action="store_true", help="Output debug logs"
    )

    subparsers = parser.add_subparsers(dest="command")

    run_parser = subparsers.add_parser("run", parents=[common], help="Run a single task")
    run_parser.add_argument("prompt", type=str, help="The task to work on")

    pipe_parser = subparsers.add_parser(
        "pipe", parents=[common], help="Run a task through the analysis/implementation/review pipeline"
    )
    pipe_parser.add_argument("prompt", type=str, help="The task to work on")

    ask_parser = subparsers.add_parser(
        "ask", parents=[common], help="Answer a question with the web research agent"
    )
    ask_parser.add_argument("prompt", type=str, help="The question or request")

    multi_parser = subparsers.add_parser(
        "multi", parents=[common], help="Run several independent tasks in parallel"
    )
    multi_parser.add_argument("prompts", nargs="+", type=str, help="The tasks to work on")

    subparsers.add_parser(
        "interactive", parents=[common], help="Queue tasks interactively (default)"
    )
    subparsers.add_parser("models", parents=[common], help="List the available models")

    parser.set_defaults(command="interactive", model=None, max_steps=None, project=None, verbose=False)
    return parser


async def dispatch(args: argparse.Namespace) -> int:
    from .agent import (
        list_models,
        run_ask,
        run_interactive,
        run_multi,
        run_pipeline,
        run_single,
    )

    if args.command == "models":
        list_models()
        return 0
    if args.command == "run":
        return await run_single(args.prompt, args.model, args.project, args.max_steps)
    if args.command == "pipe":
        return await run_pipeline(args.prompt, args.project, args.model, args.max_steps)
    if args.command == "ask":
        return await run_ask(args.prompt, args.model, args.project, args.max_steps)
    if args.command == "multi":
        return await run_multi(args.prompts, args.model, args.project, args.max_steps)
    return await run_interactive(args.model, args.project, args.max_steps)


def main(argv: list[str] | None = None) -> int:
    load_dotenv()

    from .src.config import reload_settings
    from .agent import setup_logging

    parser = setup_parser()
    args = parser.parse_args(argv)

    reload_settings()
    setup_logging(args.verbose)

    try:
        return asyncio.run(dispatch(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
