"""GitHub App authentication: private key loading and JWT generation."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from autoprotector.errors import AssertionSigningError, KeyMaterialError

# Issued in the past to tolerate clock drift between us and GitHub
JWT_CLOCK_DRIFT = timedelta(seconds=60)
JWT_LIFETIME = timedelta(seconds=600)


def load_private_key(path: str | Path) -> rsa.RSAPrivateKey:
    """Read and parse the GitHub App's PEM-encoded RSA private key."""
    try:
        pem = Path(path).read_bytes()
    except OSError as exc:
        raise KeyMaterialError(f"could not read private key file {path}") from exc

    try:
        key = serialization.load_pem_private_key(pem, password=None)
    except (ValueError, TypeError) as exc:
        raise KeyMaterialError(f"could not parse private key file {path}") from exc

    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyMaterialError(f"private key file {path} does not contain an RSA key")
    return key


class JwtMinter:
    """Mints short-lived JWTs that identify the GitHub App.

    JWTs are never cached: one is minted for every installation token
    bootstrap and used only for the two bootstrap calls.
    """

    def __init__(self, app_id: int, private_key: rsa.RSAPrivateKey) -> None:
        self._app_id = app_id
        self._private_key = private_key

    def mint(self, now: datetime | None = None) -> str:
        """Generate a JWT valid from ``now - 60s`` until ``now + 600s``."""
        now = now or datetime.now(timezone.utc)
        payload = {
            "iat": int((now - JWT_CLOCK_DRIFT).timestamp()),
            "exp": int((now + JWT_LIFETIME).timestamp()),
            "iss": str(self._app_id),
        }
        try:
            return jwt.encode(payload, self._private_key, algorithm="RS256")
        except (jwt.PyJWTError, ValueError, TypeError) as exc:
            raise AssertionSigningError("could not create JWT") from exc
