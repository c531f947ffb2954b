"""SSM Parameter Store access for provider secrets.

All secrets of one environment live under a common path
(/agricapital/<env>/...). They are read in one paginated
GetParametersByPath call and cached for the life of the process.
"""

import logging
from functools import lru_cache
from typing import ClassVar

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class SSMServiceError(Exception):
    """Raised when SSM parameters cannot be read."""

    pass


class SSMService:
    """Reads SecureString parameters from AWS SSM Parameter Store.

    Usage:
        ssm = SSMService()
        secrets = ssm.get_parameters_by_path("/agricapital/dev")
        secrets.get("fedapay/webhook_secret")
    """

    _instance: ClassVar["SSMService | None"] = None
    _cache: ClassVar[dict[str, dict[str, str]]] = {}

    def __init__(self) -> None:
        self._client = boto3.client("ssm")

    @classmethod
    def get_instance(cls) -> "SSMService":
        """Get singleton instance of SSMService."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def get_parameters_by_path(self, path: str, *, use_cache: bool = True) -> dict[str, str]:
        """Read every parameter below a path, decrypted.

        Args:
            path: Parameter path prefix (e.g., "/agricapital/dev")
            use_cache: Whether to reuse a previous read of the same path

        Returns:
            Values keyed by name relative to the path
            (e.g., "fedapay/secret_key"). Missing parameters are simply absent.

        Raises:
            SSMServiceError: If the parameters cannot be read.
        """
        path = path.rstrip("/")
        if use_cache and path in self._cache:
            logger.debug("SSM cache hit for %s", path)
            return self._cache[path]

        values: dict[str, str] = {}
        try:
            logger.info("Fetching SSM parameters under %s", path)
            paginator = self._client.get_paginator("get_parameters_by_path")
            for page in paginator.paginate(Path=path, Recursive=True, WithDecryption=True):
                for parameter in page["Parameters"]:
                    values[parameter["Name"][len(path) + 1 :]] = parameter["Value"]
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "Unknown")
            if error_code == "AccessDeniedException":
                raise SSMServiceError(
                    f"Access denied to SSM parameters under {path}. "
                    "Check IAM permissions for ssm:GetParametersByPath."
                ) from e
            raise SSMServiceError(f"Failed to read SSM parameters under {path}: {e}") from e

        self._cache[path] = values
        return values


@lru_cache(maxsize=1)
def get_ssm_service() -> SSMService:
    """Get the shared SSMService instance."""
    return SSMService.get_instance()
