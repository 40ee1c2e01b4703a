"""
Basic request examples using fetch_core.

This example demonstrates the module-level request function, parse
modes, request bodies, redirects and keep-alive through a Client.
"""

import asyncio
import logging

import fetch_core
from fetch_core import Client

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def simple_get_request():
    """Demonstrate a simple GET request with the default client."""
    logger.info("Making simple GET request...")

    response = await fetch_core.request("https://httpbin.org/get", parse="json")
    logger.info(f"Response status: {response.status_code} over {response.transport}")
    logger.info(f"Server saw headers: {sorted(response.body['headers'])}")


async def post_request_with_body():
    """Demonstrate JSON and form bodies."""
    logger.info("Making POST requests with bodies...")

    response = await fetch_core.request(
        "https://httpbin.org/post",
        method="POST",
        data={"message": "Hello, World!"},
        parse="json",
    )
    logger.info(f"JSON body echoed: {response.body['json']}")

    response = await fetch_core.request(
        "https://httpbin.org/post",
        method="POST",
        form={"name": "fetch_core"},
        parse="json",
    )
    logger.info(f"Form body echoed: {response.body['form']}")


async def redirect_demo():
    """Demonstrate redirect following."""
    logger.info("Following redirects...")

    response = await fetch_core.request(
        "https://httpbin.org/redirect/3", follow_redirects=True, parse="json"
    )
    logger.info(f"Landed on {response.url} with status {response.status_code}")


async def keep_alive_demo():
    """Demonstrate connection reuse with a dedicated client."""
    logger.info("Demonstrating keep-alive with multiple requests...")

    async with Client() as client:
        api = client.with_defaults(parse="json", headers={"X-Example": "keep-alive"})

        for path in ("/get", "/headers", "/user-agent"):
            response = await api(f"https://httpbin.org{path}")
            logger.info(f"{path}: {response.status_code} over {response.transport}")

        logger.info(f"Pool metrics: {client.pool.metrics}")


async def main():
    """Run all examples."""
    logger.info("Starting fetch_core examples...")

    try:
        await simple_get_request()
        await post_request_with_body()
        await redirect_demo()
        await keep_alive_demo()
    except fetch_core.FetchError as e:
        logger.error(f"Example failed: {e}")
        raise
    finally:
        await fetch_core.aclose()

    logger.info("All examples completed successfully!")


if __name__ == "__main__":
    asyncio.run(main())
