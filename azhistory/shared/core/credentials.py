"""
Typed credential model for the Azure subscription being reconciled.
Decouples the adapter from where the values came from (environment, .env,
a caller-provided dict).
"""
from pydantic import BaseModel, SecretStr
from typing import Optional

from azhistory.shared.core.config import (
    AUTH_METHOD_MANAGED_IDENTITY,
    AUTH_METHOD_SECRET,
    Settings,
)
from azhistory.shared.core.exceptions import ConfigurationError


class AzureCredentials(BaseModel):
    """Azure Service Principal or Managed Identity credentials."""
    subscription_id: str
    tenant_id: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[SecretStr] = None
    auth_method: str = AUTH_METHOD_SECRET  # secret | managed_identity

    @classmethod
    def from_settings(cls, settings: Settings) -> "AzureCredentials":
        """
        Build credentials from settings, failing fast on anything missing.

        Service principal auth needs tenant, client id and secret. Managed
        identity only needs the subscription (client id optionally selects a
        user-assigned identity).
        """
        required = {"AZURE_SUBSCRIPTION_ID": settings.AZURE_SUBSCRIPTION_ID}
        if settings.AZURE_AUTH_METHOD == AUTH_METHOD_SECRET:
            required.update(
                {
                    "AZURE_TENANT_ID": settings.AZURE_TENANT_ID,
                    "AZURE_CLIENT_ID": settings.AZURE_CLIENT_ID,
                    "AZURE_CLIENT_SECRET": settings.AZURE_CLIENT_SECRET,
                }
            )
        for key, value in required.items():
            if not value:
                raise ConfigurationError(
                    f"Couldn't find setting '{key}'. Set the {key} environment "
                    "variable or add it to .env.",
                    details={"setting": key},
                )
        return cls(
            subscription_id=str(settings.AZURE_SUBSCRIPTION_ID),
            tenant_id=settings.AZURE_TENANT_ID,
            client_id=settings.AZURE_CLIENT_ID,
            client_secret=settings.AZURE_CLIENT_SECRET,
            auth_method=settings.AZURE_AUTH_METHOD,
        )

    @property
    def uses_managed_identity(self) -> bool:
        return self.auth_method == AUTH_METHOD_MANAGED_IDENTITY
