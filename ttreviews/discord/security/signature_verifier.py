import logging
from typing import Optional

from nacl.exceptions import BadSignatureError, CryptoError
from nacl.signing import VerifyKey

from ttreviews.discord.domain.discord_config import DiscordConfig
from ttreviews.discord.domain.exceptions import DiscordConfigurationError

logger = logging.getLogger(__name__)


class Ed25519SignatureVerifier:
    """
    Checks that an inbound Discord request was signed over
    `timestamp + raw_body` by the application's private key.

    Fails closed: a malformed or wrong signature yields False. A missing or
    placeholder public key is a deployment defect and raises
    DiscordConfigurationError on every call.
    """

    def __init__(self, public_key_hex: str):
        self.public_key_hex = (public_key_hex or "").strip()
        self._verify_key: Optional[VerifyKey] = None

    @classmethod
    def from_config(cls, config: DiscordConfig) -> "Ed25519SignatureVerifier":
        return cls(config.public_key)

    def _key(self) -> VerifyKey:
        if self._verify_key is not None:
            return self._verify_key
        if not DiscordConfig(public_key=self.public_key_hex).public_key_configured:
            if not self.public_key_hex:
                raise DiscordConfigurationError("DISCORD_PUBLIC_KEY not configured")
            raise DiscordConfigurationError(
                "DISCORD_PUBLIC_KEY is not properly configured - still contains placeholder or invalid value"
            )
        try:
            self._verify_key = VerifyKey(bytes.fromhex(self.public_key_hex))
        except (ValueError, TypeError, CryptoError) as exc:
            raise DiscordConfigurationError(f"DISCORD_PUBLIC_KEY is not a valid Ed25519 key: {exc}") from exc
        return self._verify_key

    def verify(self, signature: str, timestamp: str, body: bytes) -> bool:
        key = self._key()
        if isinstance(body, str):
            body = body.encode("utf-8")
        try:
            key.verify((timestamp or "").encode("utf-8") + body, bytes.fromhex(signature or ""))
            return True
        except BadSignatureError:
            return False
        except (ValueError, TypeError, CryptoError) as exc:
            logger.warning(f"Signature verification error: {exc}")
            return False
