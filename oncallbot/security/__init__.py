"""Token encryption and application secrets."""

from oncallbot.security.encryption import EncryptedData, Encryptor
from oncallbot.security.secrets import Secrets, SecretsClient

__all__ = ["EncryptedData", "Encryptor", "Secrets", "SecretsClient"]
