"""
Redirect handling for fetch_core.

The RedirectController runs the executor in a bounded loop, deriving a
new RequestDescriptor for every hop.
"""

import logging
from typing import Optional, Tuple
from urllib.parse import urljoin

from .exceptions import FetchError, InvalidRequest, TooManyRedirects
from .executor import RequestExecutor
from .http_primitives import URL, RawResponse, RequestDescriptor, get_header, remove_headers, set_header

logger = logging.getLogger(__name__)

# Headers that must not leak to another origin.
CROSS_ORIGIN_STRIPPED_HEADERS = ("authorization", "cookie", "proxy-authorization")


class RedirectController:
    """
    Follows location headers.

    A response is a redirect when it carries a location header and the
    request opted into following redirects. Method and body are kept on
    every hop.
    """

    def __init__(self, executor: RequestExecutor):
        self._executor = executor

    async def resolve(self, request: RequestDescriptor) -> Tuple[RawResponse, RequestDescriptor]:
        """
        Execute ``request`` and follow its redirects.

        Returns:
            The final raw response and the descriptor of the hop that
            produced it.

        Raises:
            TooManyRedirects: If the chain is longer than max_redirects
            InvalidRequest: If a location is not a usable http(s) URL
        """
        options = request.options
        redirects = 0

        while True:
            raw = await self._executor.execute(request)
            location = raw.get_header("location")

            if not options.follow_redirects or location is None:
                return raw, request

            if options.max_redirects is not None and redirects >= options.max_redirects:
                await raw.stream.aclose()
                raise TooManyRedirects(options.max_redirects)

            try:
                next_request = self.next_hop(request, raw, location)
            except InvalidRequest:
                await raw.stream.aclose()
                raise

            await self._discard_body(raw, options.max_buffer)
            redirects += 1
            logger.debug(f"Redirect {redirects}: {request.url} -> {next_request.url}")
            request = next_request

    @staticmethod
    def next_hop(request: RequestDescriptor, raw: RawResponse, location: str) -> RequestDescriptor:
        """Derive the descriptor for the hop a location header points at."""
        try:
            url = URL.parse(urljoin(str(request.url), location))
        except ValueError as e:
            raise InvalidRequest(f"Invalid redirect location {location!r}: {e}", e)

        headers = request.headers
        if url.origin == request.url.origin:
            cookies = [value.split(";", 1)[0].strip() for value in raw.get_all_headers("set-cookie")]
            cookies = [cookie for cookie in cookies if cookie]
            if cookies:
                existing = get_header(headers, "cookie")
                if existing:
                    cookies.insert(0, existing)
                headers = set_header(headers, "cookie", "; ".join(cookies))
        else:
            headers = remove_headers(headers, CROSS_ORIGIN_STRIPPED_HEADERS)

        return request.with_url(url).with_headers(headers)

    async def _discard_body(self, raw: RawResponse, limit: Optional[int]) -> None:
        # Draining lets a keep-alive connection be reused for the next hop.
        received = 0
        try:
            async for chunk in raw.stream:
                received += len(chunk)
                if limit is not None and received > limit:
                    break
        except FetchError as e:
            logger.warning(f"Error draining redirect body from {raw.url}: {e}")
        finally:
            await raw.stream.aclose()
