"""
Main entry point for the interview-flow application.
"""

import argparse
import asyncio
import logging
import sys
from uuid import uuid4

from interview_flow.config import get_settings
from interview_flow.flows.loader import FlowLoader
from interview_flow.io.text_interface import TextInterface
from interview_flow.models.llm_client import LLMClient, RetryingLLMClient
from interview_flow.orchestrator.flow_orchestrator import FlowOrchestrator
from interview_flow.plugins.interviewer import build_interviewer_registry
from interview_flow.sessions.store import create_session_store


def setup_logging() -> None:
    """Configure application logging."""
    settings = get_settings()
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="interview-flow")
    parser.add_argument(
        "--flow",
        default=None,
        help="Path to a YAML flow description (defaults to the packaged coding interview)",
    )
    parser.add_argument(
        "--session-id",
        default=None,
        help="Session to start or resume (a new id is generated if omitted)",
    )
    parser.add_argument(
        "--store",
        choices=["memory", "sql"],
        default=None,
        help="Session store backend (overrides INTERVIEW_FLOW_SESSION_STORE)",
    )
    return parser


async def run_flow(argv: list[str] | None = None) -> None:
    """
    Run an interactive flow session.

    This is the main async entry point that initializes all components
    and runs the flow loop.
    """
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logger = logging.getLogger(__name__)

    logger.info("Initializing interview-flow...")
    logger.debug(f"Using LLM model: {settings.llm_model_name}")

    llm_client = RetryingLLMClient(
        LLMClient(
            model=settings.llm_model_name,
            base_url=settings.llm_base_url,
            timeout=settings.llm_timeout,
        )
    )
    registry = build_interviewer_registry(llm_client)

    loader = FlowLoader(registry)
    flow = loader.load_file(args.flow) if args.flow else loader.load_packaged()

    orchestrator = FlowOrchestrator(registry, store=create_session_store(settings, backend=args.store))
    session_id = args.session_id or uuid4().hex
    logger.info(f"Starting session {session_id}...")

    try:
        await TextInterface(orchestrator, flow, session_id).run()
    finally:
        await orchestrator.close()
        await llm_client.close()


def main() -> None:
    """Main entry point for the application."""
    setup_logging()

    try:
        asyncio.run(run_flow(sys.argv[1:]))
    except KeyboardInterrupt:
        print("\nSession terminated by user.")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
