"""Credential lookup for text generation providers."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class ProviderCredentials:
    """Credentials and client options resolved for a provider."""

    provider: str
    api_key: str | None
    base_url: str | None = None
    extras: dict[str, str] = field(default_factory=dict)

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def client_kwargs(self) -> dict[str, str]:
        """Keyword arguments for constructing an SDK client."""

        kwargs: dict[str, str] = {}
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.base_url:
            kwargs["base_url"] = self.base_url
        return kwargs


class ProviderRegistry:
    """Resolve provider credentials from environment or explicit overrides."""

    _DEFAULT_ENV_MAP: Mapping[str, tuple[str, str]] = {
        "openai": ("OPENAI_API_KEY", "OPENAI_BASE_URL"),
        "azure": ("AZURE_OPENAI_API_KEY", "AZURE_OPENAI_ENDPOINT"),
    }

    def __init__(self, overrides: Mapping[str, Mapping[str, str]] | None = None):
        self._overrides = {k.lower(): dict(v) for k, v in (overrides or {}).items()}

    def get_credentials(self, provider: str) -> ProviderCredentials:
        """Return credentials for ``provider``.

        Explicit overrides (e.g. injected during testing) win over the
        environment variables listed in ``_DEFAULT_ENV_MAP``.
        """

        key = provider.lower()
        if key in self._overrides:
            override = self._overrides[key]
            return ProviderCredentials(
                provider=key,
                api_key=override.get("api_key"),
                base_url=override.get("base_url"),
                extras={
                    k: v for k, v in override.items() if k not in {"api_key", "base_url"}
                },
            )
        key_var, url_var = self._DEFAULT_ENV_MAP.get(key, ("", ""))
        return ProviderCredentials(
            provider=key,
            api_key=os.getenv(key_var) if key_var else None,
            base_url=os.getenv(url_var) if url_var else None,
        )

    def is_configured(self, provider: str) -> bool:
        return self.get_credentials(provider).configured

    def list_supported_providers(self) -> dict[str, bool]:
        """Return a mapping of supported providers to whether a key is present."""

        providers = set(self._DEFAULT_ENV_MAP) | set(self._overrides)
        return {name: self.is_configured(name) for name in sorted(providers)}
