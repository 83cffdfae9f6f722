"""Secret store for outbound integration credentials.

Webhook headers never hold secret values. They hold references by name
which are resolved here at call time.
"""

import re
from typing import Dict, Mapping, Optional

from gentepro.config import get_settings
from gentepro.core.exceptions import ValidationError

SECRET_PLACEHOLDER = re.compile(r"\$\{([A-Z0-9_]+)\}")


class SecretStore:
    """Resolves secret names to values."""

    def __init__(self, secrets: Optional[Mapping[str, str]] = None):
        if secrets is None:
            secrets = get_settings().webhook_secrets
        self._secrets: Dict[str, str] = dict(secrets)

    def resolve(self, name: str) -> str:
        try:
            return self._secrets[name]
        except KeyError:
            raise ValidationError(
                f"Secret '{name}' is not configured",
                details={"secret": name},
            ) from None

