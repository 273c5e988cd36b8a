import httpx
from loguru import logger

from linecast.schemas import DescriptionType, SessionDescription
from linecast.utils.app_errors import MalformedDescriptionError, NegotiationError

DEFAULT_HTTP_TIMEOUT = 30.0
MAX_ERROR_BODY = 512


class SignalingClient:
    """Posts an offer to the signaling server and returns its answer."""

    def __init__(
        self,
        server_url: str,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.server_url = server_url
        self.timeout = timeout
        self._transport = transport

    async def post_offer(self, offer: SessionDescription) -> SessionDescription:
        """Send the offer and parse the answer.

        Raises:
            NegotiationError: If the request fails, the server does not answer
                200, or the response is not a valid answer
        """
        logger.info("Sending offer to {}", self.server_url)

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.post(
                    self.server_url,
                    content=offer.to_wire(),
                    headers={"Content-Type": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise NegotiationError(f"Failed to send offer: {exc}") from exc

        if response.status_code != httpx.codes.OK:
            body = response.text[:MAX_ERROR_BODY]
            raise NegotiationError(
                f"Signaling server returned {response.status_code}: {body}"
            )

        try:
            answer = SessionDescription.from_wire(response.content)
        except MalformedDescriptionError as exc:
            raise NegotiationError(f"Failed to parse answer: {exc}") from exc

        if answer.type is not DescriptionType.ANSWER:
            raise NegotiationError(f"Expected an answer, got {answer.type.value}")

        logger.debug("Received answer: {}", answer.summary())
        return answer
