from __future__ import annotations

import logging
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken


logger = logging.getLogger("gitdeploy.vault")


class DeployKeyVault:
    """Encrypts deploy keys at rest; plaintext only exists while launching the executor."""

    def __init__(self, encryption_key: Optional[str]):
        if not encryption_key:
            raise RuntimeError(
                "DEPLOY_KEY_ENCRYPTION_KEY must be configured "
                "(generate one with cryptography.fernet.Fernet.generate_key())."
            )
        try:
            self._fernet = Fernet(encryption_key.encode("utf-8"))
        except (TypeError, ValueError) as exc:
            raise RuntimeError("DEPLOY_KEY_ENCRYPTION_KEY is not a valid Fernet key.") from exc

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode("utf-8")).decode("ascii")

    def decrypt(self, token: Optional[str]) -> str:
        """Return the clear deploy key, or an empty string when none is stored or it is unreadable."""
        if not token:
            return ""
        try:
            return self._fernet.decrypt(token.encode("ascii")).decode("utf-8")
        except InvalidToken:
            logger.warning("Stored deploy key could not be decrypted; was the encryption key rotated?")
            return ""
