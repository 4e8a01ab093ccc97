from __future__ import annotations

import logging
import os

from ._types import Credential
from .config import Config

logger = logging.getLogger(__name__)

ENV_API_KEY = "ARTIFICIAL_ANALYSIS_API_KEY"
ENV_PROFILE_NAME = "env"


def mask_api_key(api_key: str) -> str:
    if len(api_key) <= 12:
        return "*" * len(api_key)
    return f"{api_key[:8]}...{api_key[-4:]}"


class CredentialResolver:
    """Picks the API key for origin calls.

    Precedence: the ``ARTIFICIAL_ANALYSIS_API_KEY`` environment variable, the
    explicitly selected profile, then the default profile. Resolution never
    raises; a missing credential is ``None``.
    """

    def __init__(self, config: Config):
        self._config = config

    def resolve(self) -> Credential | None:
        api_key = os.environ.get(ENV_API_KEY)
        if api_key:
            return Credential(api_key=api_key, profile=ENV_PROFILE_NAME)

        selected = self._config.selected_profile
        if selected:
            profile = self._config.get_profile(selected)
            if profile is not None:
                return Credential(api_key=profile.api_key, profile=profile.name)
            logger.warning("Profile '%s' not found in %s", selected, self._config.config_file)

        default = self._config.get_default_profile()
        if default is not None:
            return Credential(api_key=default.api_key, profile=default.name)
        return None

    def resolve_masked(self) -> str | None:
        credential = self.resolve()
        if credential is None:
            return None
        return mask_api_key(credential.api_key)


__all__ = ["CredentialResolver", "mask_api_key"]
