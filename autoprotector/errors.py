"""Exception hierarchy for the branch autoprotector."""


class AutoprotectorError(Exception):
    """Base exception for all autoprotector errors."""


class KeyMaterialError(AutoprotectorError):
    """The GitHub App private key could not be read or parsed."""


class AssertionSigningError(AutoprotectorError):
    """The GitHub App JWT could not be created."""


class InstallationBootstrapError(AutoprotectorError):
    """Could not obtain a GitHub App installation access token.

    The failing bootstrap call is kept as ``__cause__``.
    """


class ServiceError(AutoprotectorError):
    """Base for all external service communication errors."""

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(f"{service}: {message}")


class TransportFailure(ServiceError):
    """Network failure that outlasted the retry budget."""


class ResponseDecodeError(ServiceError):
    """Response body is not JSON or does not have the expected shape."""


class ApiResponseError(ServiceError):
    """Unexpected HTTP response from an external service."""

    def __init__(self, service: str, status_code: int, url: str, body: str = "") -> None:
        self.status_code = status_code
        self.url = url
        self.body = body
        super().__init__(service, f"HTTP {status_code} from {url}: {body[:200]}")


class ClientResponseError(ApiResponseError):
    """4xx response."""


class ServerResponseError(ApiResponseError):
    """5xx response."""


class PayloadError(AutoprotectorError):
    """An inbound webhook payload was rejected.

    ``public_message`` is safe to return to the sender.
    """

    public_message = "invalid payload"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)


class PayloadDecodeError(PayloadError):
    public_message = "malformed payload body"


class SignatureMissingError(PayloadError):
    public_message = "missing payload signature"


class SignatureInvalidError(PayloadError):
    public_message = "invalid payload signature"
