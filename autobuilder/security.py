from typing import Dict, Mapping, Optional
from .settings import Settings

SEEDED_EMAIL = "student@example.com"

def constant_time_equals(given: str, expected: str) -> bool:
    if len(given) != len(expected):
        return False
    diff = 0
    for x, y in zip(given.encode(), expected.encode()):
        diff |= x ^ y
    return diff == 0

class SecretStore:
    """Read-only email -> shared secret lookup, built once at startup."""

    def __init__(self, secrets: Mapping[str, str], default_secret: str):
        self._secrets: Dict[str, str] = dict(secrets)
        self._default = default_secret

    @classmethod
    def from_settings(cls, settings: Settings) -> "SecretStore":
        secrets = {SEEDED_EMAIL: settings.DEFAULT_SECRET}
        secrets.update(settings.STUDENT_SECRETS)
        return cls(secrets, settings.DEFAULT_SECRET)

    def lookup(self, email: str) -> str:
        return self._secrets.get(email, self._default)

    def verify(self, email: str, secret: Optional[str]) -> bool:
        if not isinstance(secret, str):
            return False
        return constant_time_equals(secret, self.lookup(email))
