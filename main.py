#!/usr/bin/env python3
"""
Command-line entry point: open a YouTube watch page in Chromium, extract the
transcript from its transcript panel and optionally summarize it.

Usage:
    python main.py "https://www.youtube.com/watch?v=VIDEO_ID"
    python main.py "https://www.youtube.com/watch?v=VIDEO_ID" --summarize
"""

import argparse
import asyncio
import os
import sys

from dotenv import load_dotenv
from playwright.async_api import async_playwright

from extraction_config import get_extraction_config
from log_events import evt
from logging_setup import configure_logging, get_logger
from page_accessor import PlaywrightPageAccessor
from summarizer import VideoSummarizer
from summary_pipeline import SummaryPipeline
from transcript_extractor import SessionManager
from youtube_page import NavigationWatcher, current_video_id

logger = get_logger(__name__)


async def run(url: str, summarize: bool, headless: bool) -> int:
    config = get_extraction_config()

    async with async_playwright() as p:
        browser = await p.chromium.launch(
            headless=headless,
            args=["--no-sandbox", "--disable-dev-shm-usage"]
        )
        page = None
        try:
            page = await browser.new_page()
            try:
                await page.goto(url, wait_until="networkidle",
                                timeout=config.playwright_navigation_timeout * 1000)
            except Exception:
                # Watch pages often never reach 'networkidle'
                await page.goto(url, wait_until="domcontentloaded", timeout=30000)
            evt("navigation_complete", url=url)

            accessor = PlaywrightPageAccessor(page)
            manager = SessionManager(accessor, config=config, video_id=current_video_id(url))
            await NavigationWatcher(accessor, manager).attach()

            if summarize:
                pipeline = SummaryPipeline(manager, VideoSummarizer(config=config),
                                           on_status=lambda status: print(status, file=sys.stderr))
                outcome = await pipeline.run()
                if not outcome.ok:
                    print(outcome.error, file=sys.stderr)
                    return 1
                print(outcome.summary)
                return 0

            result = await manager.extract_transcript()
            if not result.ok:
                print(result.message, file=sys.stderr)
                return 1
            if result.degraded:
                print("Warning: transcript list did not fully settle; output may be incomplete.",
                      file=sys.stderr)
            print(result.text)
            return 0

        finally:
            if page:
                await page.close()
            await browser.close()


def main():
    """Main function with CLI argument parsing."""
    load_dotenv()

    parser = argparse.ArgumentParser(
        description="Extract (and optionally summarize) a YouTube video transcript from its watch page",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py "https://www.youtube.com/watch?v=dQw4w9WgXcQ"
  python main.py "https://www.youtube.com/watch?v=dQw4w9WgXcQ" --summarize
        """
    )
    parser.add_argument("url", help="YouTube watch-page URL")
    parser.add_argument("--summarize", action="store_true", help="Summarize the transcript with OpenAI")
    parser.add_argument("--headful", action="store_true", help="Show the browser window")
    parser.add_argument("--log-level", default=os.getenv("LOG_LEVEL", "INFO"))
    parser.add_argument("--plain-logs", action="store_true", help="Human-readable logs instead of JSON")

    args = parser.parse_args()

    configure_logging(log_level=args.log_level, use_json=not args.plain_logs)

    if current_video_id(args.url) is None:
        parser.error("URL must be a YouTube watch page (https://www.youtube.com/watch?v=...)")

    headless = get_extraction_config().playwright_headless and not args.headful

    try:
        exit_code = asyncio.run(run(args.url, args.summarize, headless))
    except KeyboardInterrupt:
        logger.info("Operation interrupted by user")
        exit_code = 1
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
