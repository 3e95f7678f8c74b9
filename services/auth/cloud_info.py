"""
Cloud defaults used when building credentials for a Kusto endpoint.
"""
from typing import Optional
from urllib.parse import urlparse
from pydantic import BaseModel

from config.configuration import KustoConfig, get_config
from config.settings import DEFAULT_KUSTO_CLIENT_APP_ID, DEFAULT_REDIRECT_URI


class CloudInfo(BaseModel):
    client_app_id: str = DEFAULT_KUSTO_CLIENT_APP_ID
    redirect_uri: str = DEFAULT_REDIRECT_URI
    # Token audience; when unset the data source host is used
    resource_id: Optional[str] = None

    @classmethod
    def from_config(cls, config: Optional[KustoConfig] = None) -> "CloudInfo":
        cfg = config or get_config()
        return cls(**cfg.auth.model_dump())

    def scope_for(self, data_source: str) -> str:
        """
        Build the ``.default`` scope requested from azure-identity.

        Args:
            data_source: Cluster URL, e.g. https://help.kusto.windows.net/Samples

        Returns:
            Scope string such as https://help.kusto.windows.net/.default
        """
        resource = self.resource_id
        if not resource:
            url = urlparse(data_source)
            resource = f"{url.scheme}://{url.netloc}" if url.netloc else data_source
        return f"{resource.rstrip('/')}/.default"
