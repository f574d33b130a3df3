"""
Gloria Feed Command Line Entry Point

Streams live feed messages, or prints the latest news and recaps.

Usage:
    gloria-feed stream --topics crypto,macro
    gloria-feed news --limit 5
    gloria-feed recaps --timeframe 24h
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from datetime import datetime, timezone
from typing import Optional, Sequence

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def _parse_topics(value: str) -> list[str]:
    return [t.strip() for t in value.split(",") if t.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gloria-feed", description="Gloria AI news hub client")
    parser.add_argument("--topics", type=_parse_topics, default=None, help="Comma-separated feed categories")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("stream", help="Stream live feed messages until interrupted")

    news = sub.add_parser("news", help="Print the latest news")
    news.add_argument("--limit", type=int, default=None)
    news.add_argument("--page", type=int, default=1)

    recaps = sub.add_parser("recaps", help="Print the recap for every topic")
    recaps.add_argument("--timeframe", default=None)
    return parser


async def _stream(client) -> None:
    from gloria_client.models.messages import FeedMessage

    shutdown_event = asyncio.Event()

    def handle_data(message: FeedMessage) -> None:
        content = message.content if isinstance(message.content, dict) else {}
        signal_text = content.get("signal")
        if signal_text:
            print(f"[LIVE] {message.feed_category or 'UPDATE'}: {signal_text}")

    async def handle_give_up(error: Exception) -> None:
        logger.error("Feed abandoned", extra={"error": str(error)})
        shutdown_event.set()

    client.on_message("data", handle_data)
    client.on_give_up(handle_give_up)
    await client.connect()
    logger.info(f"Subscribed to: {', '.join(sorted(client.get_subscribed_topics()))}")

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    try:
        await shutdown_event.wait()
    finally:
        logger.info("Shutting down...")
        stats = client.get_stats()
        logger.info(
            "Final stats",
            extra={
                "messages_received": stats["messages_received"],
                "messages_dropped": stats["messages_dropped"],
            },
        )


async def _news(client, page: int, limit: Optional[int]) -> None:
    for item in await client.fetch_news(page=page, limit=limit):
        ts = datetime.fromtimestamp(item.timestamp, tz=timezone.utc).strftime("%H:%M:%S")
        print(f"[{ts}] {item.signal}")


async def _recaps(client, timeframe: Optional[str]) -> None:
    recaps = await client.fetch_all_recaps(timeframe)
    for topic, data in recaps.items():
        if "error" in data:
            print(f"{topic}: {data['error']}")
        else:
            print(f"{topic}: {str(data.get('recap', ''))[:100]}")


async def main(argv: Optional[Sequence[str]] = None) -> None:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    from gloria_client import GloriaClient

    async with GloriaClient(topics=args.topics) as client:
        if args.command == "stream":
            await _stream(client)
        elif args.command == "news":
            await _news(client, args.page, args.limit)
        elif args.command == "recaps":
            await _recaps(client, args.timeframe)


def run() -> None:
    load_dotenv()
    asyncio.run(main())


if __name__ == "__main__":
    run()
