"""
Streaming example using fetch_core.

Large bodies can be consumed chunk by chunk with ``stream=True``; the
buffer limit applies only to buffered responses.
"""

import asyncio
import logging

import fetch_core
from fetch_core import ResponseTooLarge

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def streaming_response_demo():
    """Process a response in chunks."""
    response = await fetch_core.request("https://httpbin.org/bytes/100000", stream=True)
    logger.info(f"Response status: {response.status_code}")

    total_bytes = 0
    chunk_count = 0
    async with response:
        async for chunk in response:
            total_bytes += len(chunk)
            chunk_count += 1

    logger.info(f"Streaming complete: {total_bytes} bytes in {chunk_count} chunks")


async def buffer_limit_demo():
    """Show the max_buffer cap on a buffered response."""
    try:
        await fetch_core.request("https://httpbin.org/bytes/100000", max_buffer=10_000)
    except ResponseTooLarge as e:
        logger.info(f"Refused to buffer: {e}")


async def main():
    try:
        await streaming_response_demo()
        await buffer_limit_demo()
    finally:
        await fetch_core.aclose()


if __name__ == "__main__":
    asyncio.run(main())
