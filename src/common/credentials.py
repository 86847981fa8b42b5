"""
Encrypted account credential storage for Burnmail.

The account file holds the generated address, its password and the last
bearer token. It is encrypted with AES-256-GCM using a key derived from a
random secret kept in the operating system keyring. When no keyring
backend is usable the file is written as plain JSON readable only by the
owner.
"""

import base64
import json
import logging
import os
import secrets
from pathlib import Path
from typing import Optional

import keyring
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from keyring.errors import KeyringError, PasswordDeleteError
from pydantic import ValidationError

from .exceptions import CredentialsError, DecryptionError
from .models import AccountData

logger = logging.getLogger(__name__)


class CredentialCipher:
    """
    Password based encryption for the account file.

    Format: salt (32) + nonce (12) + ciphertext + tag (16)
    """

    SALT_SIZE = 32
    NONCE_SIZE = 12
    TAG_SIZE = 16
    KEY_SIZE = 32
    ITERATIONS = 100000

    @classmethod
    def derive_key(cls, password: str, salt: bytes) -> bytes:
        """
        Derive encryption key from password using PBKDF2.

        Args:
            password: Keyring secret.
            salt: Random salt.

        Returns:
            Derived key bytes.
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=cls.KEY_SIZE,
            salt=salt,
            iterations=cls.ITERATIONS,
        )
        return kdf.derive(password.encode("utf-8"))

    @classmethod
    def encrypt(cls, data: bytes, password: str) -> bytes:
        """Encrypt data with password."""
        salt = secrets.token_bytes(cls.SALT_SIZE)
        nonce = secrets.token_bytes(cls.NONCE_SIZE)
        key = cls.derive_key(password, salt)

        encryptor = Cipher(algorithms.AES(key), modes.GCM(nonce)).encryptor()
        ciphertext = encryptor.update(data) + encryptor.finalize()

        return salt + nonce + ciphertext + encryptor.tag

    @classmethod
    def decrypt(cls, encrypted_data: bytes, password: str) -> bytes:
        """
        Decrypt data with password.

        Args:
            encrypted_data: Salt, nonce, ciphertext and tag.
            password: Keyring secret.

        Returns:
            Decrypted data.

        Raises:
            DecryptionError: If the data is truncated or fails authentication.
        """
        header = cls.SALT_SIZE + cls.NONCE_SIZE
        if len(encrypted_data) < header + cls.TAG_SIZE:
            raise DecryptionError("Encrypted data too short")

        salt = encrypted_data[:cls.SALT_SIZE]
        nonce = encrypted_data[cls.SALT_SIZE:header]
        ciphertext = encrypted_data[header:-cls.TAG_SIZE]
        tag = encrypted_data[-cls.TAG_SIZE:]

        key = cls.derive_key(password, salt)

        try:
            decryptor = Cipher(
                algorithms.AES(key), modes.GCM(nonce, tag)
            ).decryptor()
            return decryptor.update(ciphertext) + decryptor.finalize()
        except Exception as e:
            raise DecryptionError(f"Decryption failed: {e}")


class CredentialStore:
    """Loads and saves the single stored account."""

    def __init__(
        self,
        path: Path,
        keyring_service: str = "burnmail",
        keyring_user: str = "default",
    ) -> None:
        """
        Initialize the credential store.

        Args:
            path: Location of the account file.
            keyring_service: Keyring service holding the encryption secret.
            keyring_user: Keyring user holding the encryption secret.
        """
        self._path = Path(path)
        self._service = keyring_service
        self._user = keyring_user

    @property
    def path(self) -> Path:
        """Location of the account file."""
        return self._path

    def exists(self) -> bool:
        """Check whether an account has been saved."""
        return self._path.exists()

    def _get_secret(self, create: bool) -> Optional[str]:
        """
        Fetch the encryption secret from the keyring.

        Args:
            create: Generate and store a new secret when none exists.

        Returns:
            The secret, or None when the keyring is unavailable.
        """
        try:
            secret = keyring.get_password(self._service, self._user)
            if secret is None and create:
                secret = base64.b64encode(secrets.token_bytes(32)).decode("ascii")
                keyring.set_password(self._service, self._user, secret)
            return secret
        except KeyringError as e:
            logger.warning("Keyring unavailable: %s", e)
            return None

    def save(self, account: AccountData) -> None:
        """
        Persist the account, encrypted when a keyring is available.

        Raises:
            CredentialsError: If the file cannot be written.
        """
        payload = json.dumps(account.to_dict(), indent=2).encode("utf-8")
        secret = self._get_secret(create=True)

        if secret is None:
            logger.warning(
                "Storing credentials without encryption at %s", self._path
            )
            data = payload
        else:
            data = CredentialCipher.encrypt(payload, secret)

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd = os.open(self._path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.chmod(self._path, 0o600)
        except OSError as e:
            raise CredentialsError(
                f"Failed to write account file: {e}", {"path": str(self._path)}
            )

        logger.debug("Saved account %s", account.address)

    def load(self) -> Optional[AccountData]:
        """
        Load the stored account.

        Returns:
            The account, or None when nothing has been saved.

        Raises:
            CredentialsError: If the file exists but cannot be read.
        """
        if not self._path.exists():
            return None

        try:
            data = self._path.read_bytes()
        except OSError as e:
            raise CredentialsError(
                f"Failed to read account file: {e}", {"path": str(self._path)}
            )

        payload = data
        secret = self._get_secret(create=False)
        if secret is not None:
            try:
                payload = CredentialCipher.decrypt(data, secret)
            except DecryptionError:
                logger.debug("Account file is not encrypted, reading as JSON")

        try:
            return AccountData.model_validate(json.loads(payload))
        except (ValueError, ValidationError) as e:
            raise CredentialsError(
                f"Account file is unreadable: {e}", {"path": str(self._path)}
            )

    def delete(self) -> None:
        """
        Remove the account file and the keyring secret.

        Raises:
            CredentialsError: If the file cannot be removed.
        """
        try:
            self._path.unlink(missing_ok=True)
        except OSError as e:
            raise CredentialsError(
                f"Failed to remove account file: {e}", {"path": str(self._path)}
            )

        try:
            keyring.delete_password(self._service, self._user)
        except PasswordDeleteError:
            pass
        except KeyringError as e:
            logger.warning("Failed to remove keyring secret: %s", e)
