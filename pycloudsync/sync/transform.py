"""Content transforms applied on every upload and download."""

import base64
import logging
from typing import Any, Optional

from ..crypto import AESCryptoService
from ..exceptions import CryptoError, UnsupportedOperationError
from ..markdown import process_markdown_content
from ..providers.base import StorageProvider
from ..utils import (
    MIN_ENCRYPTED_TEXT_LENGTH,
    decode_base64,
    get_extension,
    is_binary_extension,
    looks_like_base64,
)

logger = logging.getLogger(__name__)


class ContentTransformer:
    """Markdown link rewriting and transparent encryption.

    Text content is stored remotely as base64 of the ciphertext, binary
    content as the raw ciphertext. With encryption disabled content passes
    through unchanged.
    """

    def __init__(self, settings: Any, crypto: Optional[AESCryptoService] = None):
        """Initialize content transformer.

        Args:
            settings: Sync settings (encryption and markdown options)
            crypto: Crypto service, a default one is created when omitted
        """
        self.settings = settings
        self.crypto = crypto or AESCryptoService()

    @property
    def encryption_key(self) -> Optional[str]:
        encryption = self.settings.encryption
        return encryption.key if encryption.active else None

    def is_binary_path(self, path: str) -> bool:
        return is_binary_extension(path)

    def prepare_upload(
        self,
        content: bytes,
        remote_path: str,
        is_binary: bool,
        server_type: str = "default",
    ) -> bytes:
        """Return the bytes to store remotely for local ``content``.

        Binary files are encrypted as they are, without checking whether
        they already hold ciphertext. Text files that are not valid UTF-8
        skip the markdown rewrite and the already-encrypted check, and their
        original bytes are encrypted.
        """
        key = self.encryption_key

        if is_binary:
            if not key:
                return content
            try:
                return self.crypto.encrypt(content, key)
            except CryptoError as e:
                logger.error(f"Encryption failed for {remote_path}: {e}")
                return content

        rewrite = (
            self.settings.rewrite_markdown_links
            and get_extension(remote_path) == "md"
        )
        if not rewrite and not key:
            return content

        text: Optional[str]
        try:
            text = content.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug(f"{remote_path} is not UTF-8, keeping its bytes unchanged")
            text = None

        payload = content
        if text is not None and rewrite:
            payload = process_markdown_content(text, "", server_type).encode("utf-8")

        if not key:
            return payload

        if text is not None and self._is_encrypted_text(text, key):
            logger.debug(f"{remote_path} is already encrypted, uploading as is")
            return payload

        try:
            ciphertext = self.crypto.encrypt(payload, key)
        except CryptoError as e:
            logger.error(f"Encryption failed for {remote_path}: {e}")
            return payload
        return base64.b64encode(ciphertext)

    def _is_encrypted_text(self, text: str, key: str) -> bool:
        stripped = text.strip()
        if len(stripped) <= MIN_ENCRYPTED_TEXT_LENGTH or not looks_like_base64(
            stripped
        ):
            return False
        try:
            self.crypto.decrypt(decode_base64(stripped), key)
        except (ValueError, CryptoError):
            return False
        return True

    def upload(
        self,
        provider: StorageProvider,
        content: bytes,
        remote_path: str,
        *,
        is_binary: bool,
        mtime: Optional[int] = None,
    ) -> None:
        """Transform local content and upload it.

        Args:
            provider: Target provider
            content: Local file content
            remote_path: Full remote path including the base path
            is_binary: Whether the file is handled as binary
            mtime: Local modification time in epoch milliseconds
        """
        payload = self.prepare_upload(
            content, remote_path, is_binary, provider.get_type()
        )
        provider.upload_file(remote_path, payload, mtime=mtime)

    def restore_download(self, data: bytes, remote_path: str, is_binary: bool) -> bytes:
        """Turn stored remote bytes back into local content.

        Never raises for content that does not decrypt; a warning is logged
        and the content is returned as received.
        """
        key = self.encryption_key
        if not key:
            return data

        try:
            if is_binary:
                return self.crypto.decrypt(data, key)
            text = data.decode("utf-8").strip()
            return self.crypto.decrypt(decode_base64(text), key)
        except (ValueError, CryptoError) as e:
            logger.warning(f"Could not decrypt {remote_path}, keeping raw content: {e}")
            return data

    def download(
        self, provider: StorageProvider, remote_path: str, *, is_binary: bool
    ) -> bytes:
        """Download a remote file and return its local content.

        Raises:
            UnsupportedOperationError: If the provider cannot download content
        """
        if not provider.supports_content_download():
            raise UnsupportedOperationError(
                f"{provider.get_name()} does not support downloading files"
            )
        data = provider.download_file_content(remote_path)
        return self.restore_download(data, remote_path, is_binary)
