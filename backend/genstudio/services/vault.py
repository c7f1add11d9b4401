import logging
import hvac
from typing import Optional
from genstudio.config import Settings

logger = logging.getLogger(__name__)


class VaultService:
    def __init__(self, settings: Settings):
        self.client = hvac.Client(url=settings.VAULT_ADDR, token=settings.VAULT_TOKEN)
        self.mount_point = settings.VAULT_MOUNT_POINT

    def get_api_key(self, provider_slug: str) -> Optional[str]:
        try:
            secret = self.client.secrets.kv.v2.read_secret_version(
                path=f"llm-providers/{provider_slug}",
                mount_point=self.mount_point,
            )
            return secret["data"]["data"].get("api_key")
        except Exception as e:
            logger.warning(f"Vault lookup failed for {provider_slug}: {e}")
            return None


def resolve_provider_key(settings: Settings, vault: Optional[VaultService] = None) -> str:
    """GEMINI_API_KEY if set, otherwise the key stored in Vault (when enabled)."""
    if settings.GEMINI_API_KEY:
        return settings.GEMINI_API_KEY
    if not settings.VAULT_ENABLED:
        return ""
    vault = vault or VaultService(settings)
    return vault.get_api_key("gemini") or ""
