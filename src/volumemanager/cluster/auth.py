"""
Credential acquisition for the cluster.
"""
import logging
import subprocess
from datetime import datetime
from typing import Callable

from ..config.settings import CredentialConfig
from ..errors import AuthenticationError
from ..session import AuthCredential

logger = logging.getLogger(__name__)


def _lifetime_arg(credentials: CredentialConfig) -> str:
    return f"{int(credentials.ticket_lifetime.total_seconds())}s"


class KerberosAuthProvider:
    """Obtains a Kerberos ticket from a keytab with `kinit`."""

    def __init__(self, now: Callable[[], datetime] = datetime.now, timeout: int = 60) -> None:
        self._now = now
        self.timeout = timeout

    def login(self, credentials: CredentialConfig) -> AuthCredential:
        logger.info(f"Attempting authentication with principal={credentials.principal}, keytab={credentials.keytab}")
        started = self._now()
        cmd = ["kinit", "-l", _lifetime_arg(credentials), "-kt", credentials.keytab, credentials.principal]
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            raise AuthenticationError("kinit timed out")
        except OSError as e:
            raise AuthenticationError(f"Could not run kinit: {e}")

        if result.returncode != 0:
            raise AuthenticationError(f"Authentication failed: {result.stderr.strip()}")

        credential = AuthCredential(principal=credentials.principal, expires_at=started + credentials.ticket_lifetime)
        logger.info(f"Authentication successful, ticket valid until {credential.expires_at:%Y-%m-%d %H:%M:%S}")
        return credential

    def is_expired(self, credential: AuthCredential, now: datetime) -> bool:
        expired = credential.is_expired(now)
        if expired:
            logger.info("Kerberos ticket expired")
        return expired


class StaticAuthProvider:
    """For clusters reached without Kerberos; the credential never expires."""

    def login(self, credentials: CredentialConfig) -> AuthCredential:
        return AuthCredential(principal=credentials.principal or "anonymous")

    def is_expired(self, credential: AuthCredential, now: datetime) -> bool:
        return credential.is_expired(now)


def auth_provider_for(credentials: CredentialConfig):
    if credentials.mode == "kerberos":
        return KerberosAuthProvider()
    return StaticAuthProvider()
