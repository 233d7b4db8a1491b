"""
Credentials for the chat and image providers.

Quick Start:
    from flowengine.credentials import CredentialProvider

    creds = CredentialProvider()
    if creds.is_available("openai"):
        api_key = creds.get("openai")
"""

from .base import CredentialProvider, CredentialSpec

CREDENTIAL_SPECS: dict[str, CredentialSpec] = {
    "openai": CredentialSpec(
        env_var="OPENAI_API_KEY",
        used_by=["openai", "dalle"],
        help_url="https://platform.openai.com/api-keys",
        description="OpenAI chat completions and image generation",
    ),
    "anthropic": CredentialSpec(
        env_var="ANTHROPIC_API_KEY",
        used_by=["anthropic"],
        help_url="https://console.anthropic.com/settings/keys",
        description="Anthropic messages API",
    ),
    "gemini": CredentialSpec(
        env_var="GEMINI_API_KEY",
        aliases=["GOOGLE_API_KEY"],
        used_by=["gemini"],
        help_url="https://aistudio.google.com/app/apikey",
        description="Google Gemini generateContent API",
    ),
    "grok": CredentialSpec(
        env_var="XAI_API_KEY",
        aliases=["GROK_API_KEY"],
        used_by=["grok"],
        help_url="https://console.x.ai",
        description="xAI chat completions and image generation",
    ),
    "replicate": CredentialSpec(
        env_var="REPLICATE_API_TOKEN",
        aliases=["REPLICATE_API_KEY"],
        used_by=["stable-diffusion", "stable-diffusion-xl", "flux"],
        help_url="https://replicate.com/account/api-tokens",
        description="Replicate predictions (Stable Diffusion, SDXL, Flux)",
    ),
}


def credential_for_provider(provider: str) -> str | None:
    """Map a node's provider name to the credential it needs."""
    for name, spec in CREDENTIAL_SPECS.items():
        if provider in spec.used_by:
            return name
    return None


__all__ = [
    "CREDENTIAL_SPECS",
    "CredentialProvider",
    "CredentialSpec",
    "credential_for_provider",
]
