#!/usr/bin/env python3
"""Main entry point: turn an Open WebUI answer into a Presenton slide deck"""

import asyncio
import os
import sys
import argparse
import uuid
from loguru import logger

from deckrelay.browser.session import BrowserSession
from deckrelay.config.settings import DEFAULT_CONFIG_PATH, load_settings
from deckrelay.workflow.orchestrator import WorkflowOrchestrator

LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"

DEFAULT_PROMPT = "Create a presentation about the benefits of AI in education with 5 slides"


def configure_logging(debug: bool = False):
    """Colored stderr sink plus a serialized JSON file sink under logs/"""
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "INFO", format=LOG_FORMAT)
    logger.add("logs/deckrelay_json_{time}.log", rotation="1 day", retention="7 days", level="DEBUG", serialize=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Open WebUI to Presenton slide deck automation')
    parser.add_argument('prompt', nargs='?', default=DEFAULT_PROMPT, help='Prompt sent to Open WebUI')
    parser.add_argument('--headless', action='store_true', help='Run browser in headless mode (no UI)')
    parser.add_argument('--debug', action='store_true', help='Enable debug mode (verbose logging, extra page dumps)')
    parser.add_argument('--extract-only', action='store_true', help='Stop after extracting the Open WebUI answer')
    parser.add_argument('--no-review-hold', action='store_true', help='Close the browser as soon as the deck is rendered')
    parser.add_argument('--config', default=DEFAULT_CONFIG_PATH, help='YAML file with wait overrides')
    return parser


async def main(argv=None):
    """Main entry point"""
    args = build_parser().parse_args(argv)

    if args.headless:
        os.environ['HEADLESS'] = 'true'
    if args.debug:
        os.environ['DEBUG'] = 'true'

    settings = load_settings(args.config)
    configure_logging(settings.debug)
    if args.no_review_hold:
        settings.review_hold_seconds = 0

    run_id = str(uuid.uuid4())[:8]
    logger.info(f"[{run_id}] Settings: {settings.safe_summary()}")
    logger.info(f"[{run_id}] Prompt: {args.prompt}")

    session = BrowserSession(run_id=run_id, slow_mo=settings.slow_mo)
    try:
        await session.start(headless=settings.headless)
        orchestrator = WorkflowOrchestrator(session.new_page, settings, run_id=run_id)
        result = await orchestrator.run(args.prompt, extract_only=args.extract_only)

        if not result.success:
            logger.error(f"[{run_id}] Execution failed in state {result.state.value}: {result.error}")
            return 1

        if args.extract_only:
            print(result.response.text)
        else:
            logger.success(f"[{run_id}] Presentation: {result.presentation_url or 'see browser window'}")
        logger.info(f"[{run_id}] Snapshots: {len(result.snapshots)} saved under {settings.snapshot_dir}")
        return 0

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        return 1
    finally:
        await session.close()


if __name__ == "__main__":
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)
