"""
Secret lookup for provider-backed nodes.

A secret is found, in order, in values set on the provider object, the
process environment, then a ``.env`` file. The ``.env`` file is re-read on
every lookup and never copied into ``os.environ``.
"""

from __future__ import annotations

import os
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import dotenv_values

from flowengine.errors import ConfigurationError


@dataclass
class CredentialSpec:
    """Where one provider's API key lives."""

    env_var: str
    aliases: list[str] = field(default_factory=list)
    # provider names as written in node configs
    used_by: list[str] = field(default_factory=list)
    help_url: str = ""
    description: str = ""

    @property
    def variables(self) -> tuple[str, ...]:
        return (self.env_var, *self.aliases)


class CredentialProvider:
    """
    Maps a credential name ("openai", "replicate", ...) to its secret.

        creds = CredentialProvider()
        api_key = creds.require("openai")

        creds = CredentialProvider.for_testing({"openai": "sk-test"})
    """

    def __init__(
        self,
        specs: Mapping[str, CredentialSpec] | None = None,
        dotenv_path: Path | None = None,
        values: Mapping[str, str] | None = None,
    ):
        if specs is None:
            from flowengine.credentials import CREDENTIAL_SPECS

            specs = CREDENTIAL_SPECS
        self.specs = dict(specs)
        self.dotenv_path = dotenv_path or Path.cwd() / ".env"
        self._values: dict[str, str] = dict(values or {})

    @classmethod
    def for_testing(
        cls,
        values: Mapping[str, str],
        specs: Mapping[str, CredentialSpec] | None = None,
        dotenv_path: Path | None = None,
    ) -> CredentialProvider:
        # point dotenv_path at a missing file to ignore a developer's .env
        return cls(specs=specs, dotenv_path=dotenv_path, values=values)

    def set(self, name: str, value: str) -> None:
        self._values[name] = value

    def _sources(self) -> Iterator[Mapping[str, str | None]]:
        yield os.environ
        if self.dotenv_path.is_file():
            yield dotenv_values(self.dotenv_path)

    def get(self, name: str) -> str | None:
        """
        Return the secret for ``name`` or None when no source has it.

        Raises:
            KeyError: ``name`` is not a known credential.
        """
        spec = self.specs.get(name)
        if spec is None:
            raise KeyError(f"Unknown credential '{name}'. Available: {sorted(self.specs)}")
        if name in self._values:
            return self._values[name]
        for source in self._sources():
            for variable in spec.variables:
                if source.get(variable):
                    return source[variable]
        return None

    def is_available(self, name: str) -> bool:
        return bool(self.get(name))

    def require(self, name: str) -> str:
        """Like get(), but a missing or empty secret raises ConfigurationError."""
        value = self.get(name)
        if value:
            return value
        spec = self.specs[name]
        where = f" (get one at {spec.help_url})" if spec.help_url else ""
        raise ConfigurationError(
            f"{name} API key is not configured. Set {spec.env_var}{where}.",
            field=spec.env_var,
        )
