"""
HTTP-01 challenge responders.

A responder publishes the key authorization for each challenge token at
``/.well-known/acme-challenge/<token>`` and removes it afterwards.
"""

from typing import Iterable

from .logger import get_logger
from .storage import AzureBlobStorageProvider


CHALLENGE_PATH = ".well-known/acme-challenge"


def challenge_file_path(token: str) -> str:
    return f"{CHALLENGE_PATH}/{token}"


class AzureStorageHttpChallengeResponder:
    """
    Serves challenge files from a blob container.

    With the default ``$web`` container the storage account's static
    website answers the validation requests.
    """

    type = "storageAccount"

    def __init__(self, storage: AzureBlobStorageProvider):
        self.storage = storage
        self.logger = get_logger()

    def set_challenge(self, token: str, content: str) -> str:
        """
        Publish one challenge file.

        Returns:
            The blob path that was written
        """
        path = challenge_file_path(token)
        self.storage.upload_text(path, content)
        self.logger.debug(f"Published challenge file {path}")
        return path

    def cleanup(self, tokens: Iterable[str]) -> None:
        """Remove the challenge files for ``tokens``."""
        for token in tokens:
            self.storage.delete(challenge_file_path(token))
