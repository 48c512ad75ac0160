from __future__ import annotations

import os
from dataclasses import dataclass, field


class SecretProviderError(RuntimeError):
    pass


@dataclass(frozen=True)
class ResolvedSecrets:
    username: str
    password: str = field(repr=False)


class SecretProvider:
    def resolve(self, reference: str) -> ResolvedSecrets:
        raise NotImplementedError


class EnvSecretProvider(SecretProvider):
    """
    IMAP credentials from the environment, for cron and systemd timers.

    reference: logical mailbox name, e.g. "bounces"
    variables:
      LISTKEEPER_<REFERENCE>_USERNAME
      LISTKEEPER_<REFERENCE>_PASSWORD
    """

    def __init__(self, environ: dict[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    def resolve(self, reference: str) -> ResolvedSecrets:
        key = reference.upper().replace("-", "_")
        names = (f"LISTKEEPER_{key}_USERNAME", f"LISTKEEPER_{key}_PASSWORD")
        missing = [n for n in names if n not in self._environ]
        if missing:
            raise SecretProviderError(
                "Missing environment variable(s): " + ", ".join(missing)
            )

        username, password = (self._environ[n] for n in names)
        if not username or not password:
            raise SecretProviderError(f"Empty username or password for {reference}")
        return ResolvedSecrets(username=username, password=password)


def secret_provider(provider_name: str) -> SecretProvider:
    p = provider_name.lower()
    if p == "env":
        return EnvSecretProvider()
    raise SecretProviderError(f"Unsupported secrets provider: {provider_name}")
