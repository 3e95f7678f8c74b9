"""
Token Provider selection for Kusto connections.
Maps a populated ConnectionStringBuilder to an azure-identity credential.
"""
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import structlog
from azure.core.exceptions import AzureError
from azure.identity import (
    AzureCliCredential,
    CertificateCredential,
    ClientSecretCredential,
    DefaultAzureCredential,
    InteractiveBrowserCredential,
    ManagedIdentityCredential,
    UsernamePasswordCredential,
    WorkloadIdentityCredential,
)
from pydantic import SecretStr

from services.common.exceptions import TokenProviderError
from services.infrastructure.connection_string_builder import ConnectionStringBuilder
from .cloud_info import CloudInfo

logger = structlog.get_logger()

BEARER_TYPE = "Bearer"


class AuthStrategy(str, Enum):
    INTERACTIVE_LOGIN = "interactive_login"
    USER_PASSWORD = "user_password"
    CLIENT_SECRET = "client_secret"
    CERTIFICATE_PATH = "certificate_path"
    CERTIFICATE_BYTES = "certificate_bytes"
    MANAGED_IDENTITY = "managed_identity"
    WORKLOAD_IDENTITY = "workload_identity"
    USER_TOKEN = "user_token"
    APPLICATION_TOKEN = "application_token"
    AZ_CLI = "az_cli"
    TOKEN_CREDENTIAL = "token_credential"
    DEFAULT = "default_azure_credential"


class TokenProvider:
    """Acquires bearer tokens for one connection, either static or through a credential."""

    def __init__(
        self,
        strategy: AuthStrategy,
        scope: str,
        credential_factory: Optional[Callable[[], Any]] = None,
        custom_token: Optional[SecretStr] = None,
    ):
        if credential_factory is None and custom_token is None:
            raise TokenProviderError("TokenProvider needs a credential factory or a static token")

        self.strategy = strategy
        self.scope = scope
        self.token_scheme = BEARER_TYPE
        self._credential_factory = credential_factory
        self._custom_token = custom_token
        self._credential = None
        self._lock = threading.Lock()

    def is_initialized(self) -> bool:
        return self._custom_token is not None or self._credential is not None

    @property
    def credential(self) -> Any:
        """The underlying credential, built on first access."""
        if self._credential_factory is None:
            return None

        with self._lock:
            if self._credential is None:
                try:
                    self._credential = self._credential_factory()
                except (ValueError, TypeError, OSError) as e:
                    logger.error("credential_init_failed", strategy=self.strategy.value, error=str(e))
                    raise TokenProviderError(
                        f"Failed to create credential for {self.strategy.value}: {e}",
                        details={"strategy": self.strategy.value}
                    ) from e
                logger.debug("credential_initialized", strategy=self.strategy.value)
        return self._credential

    def acquire_token(self) -> Tuple[str, str]:
        """
        Get a token for the connection scope.

        Returns:
            Tuple of (token_scheme, token)
        """
        if self._custom_token is not None:
            return self.token_scheme, self._custom_token.get_secret_value()

        credential = self.credential
        try:
            access_token = credential.get_token(self.scope)
        except AzureError as e:
            logger.error("token_acquisition_failed", strategy=self.strategy.value, scope=self.scope, error=str(e))
            raise TokenProviderError(
                f"Failed to acquire token using {self.strategy.value}: {e}",
                details={"strategy": self.strategy.value, "scope": self.scope}
            ) from e

        return self.token_scheme, access_token.token

    def auth_header(self) -> str:
        scheme, token = self.acquire_token()
        return f"{scheme} {token}"


def _without_none(**kwargs: Any) -> Dict[str, Any]:
    return {key: value for key, value in kwargs.items() if value is not None}


def _secret(value: Optional[SecretStr]) -> Optional[str]:
    return value.get_secret_value() if value is not None else None


class TokenProviderSelector:
    """Chooses and builds the token provider for a connection record."""

    def __init__(self, cloud_info: Optional[CloudInfo] = None):
        self.cloud_info = cloud_info or CloudInfo.from_config()

    @staticmethod
    def select_strategy(kcsb: ConnectionStringBuilder) -> AuthStrategy:
        """Return the first strategy whose fields are populated."""
        if kcsb.interactive_login:
            return AuthStrategy.INTERACTIVE_LOGIN
        if kcsb.aad_user_id and kcsb.password:
            return AuthStrategy.USER_PASSWORD
        if kcsb.application_client_id and kcsb.application_key:
            return AuthStrategy.CLIENT_SECRET
        if kcsb.application_certificate_path:
            return AuthStrategy.CERTIFICATE_PATH
        if kcsb.application_certificate_bytes:
            return AuthStrategy.CERTIFICATE_BYTES
        if kcsb.msi_authentication:
            return AuthStrategy.MANAGED_IDENTITY
        if kcsb.workload_authentication:
            return AuthStrategy.WORKLOAD_IDENTITY
        if kcsb.user_token:
            return AuthStrategy.USER_TOKEN
        if kcsb.application_token:
            return AuthStrategy.APPLICATION_TOKEN
        if kcsb.az_cli:
            return AuthStrategy.AZ_CLI
        if kcsb.token_credential is not None:
            return AuthStrategy.TOKEN_CREDENTIAL
        return AuthStrategy.DEFAULT

    def new_token_provider(self, kcsb: ConnectionStringBuilder) -> TokenProvider:
        """
        Validate the record and build its token provider.

        Raises:
            ValidationError: If the record is incomplete
        """
        kcsb.validate_auth()
        strategy = self.select_strategy(kcsb)
        scope = self.cloud_info.scope_for(kcsb.data_source)

        logger.info(
            "token_provider_selected",
            strategy=strategy.value,
            data_source=kcsb.data_source,
            application=kcsb.application_for_tracing,
        )

        if strategy is AuthStrategy.USER_TOKEN:
            return TokenProvider(strategy, scope, custom_token=kcsb.user_token)
        if strategy is AuthStrategy.APPLICATION_TOKEN:
            return TokenProvider(strategy, scope, custom_token=kcsb.application_token)

        return TokenProvider(strategy, scope, credential_factory=self._credential_factory(strategy, kcsb))

    def _credential_factory(self, strategy: AuthStrategy, kcsb: ConnectionStringBuilder) -> Callable[[], Any]:
        options = dict(kcsb.credential_options)
        client_id = kcsb.application_client_id or self.cloud_info.client_app_id
        tenant_id = kcsb.authority_id or None

        if strategy is AuthStrategy.INTERACTIVE_LOGIN:
            return lambda: InteractiveBrowserCredential(
                **_without_none(
                    tenant_id=tenant_id,
                    client_id=client_id,
                    redirect_uri=kcsb.redirect_url or self.cloud_info.redirect_uri,
                    login_hint=kcsb.aad_user_id,
                ),
                **options,
            )

        if strategy is AuthStrategy.USER_PASSWORD:
            return lambda: UsernamePasswordCredential(
                client_id,
                kcsb.aad_user_id,
                _secret(kcsb.password),
                **_without_none(tenant_id=tenant_id),
                **options,
            )

        if strategy is AuthStrategy.CLIENT_SECRET:
            return lambda: ClientSecretCredential(
                tenant_id, kcsb.application_client_id, _secret(kcsb.application_key), **options
            )

        if strategy is AuthStrategy.CERTIFICATE_PATH:
            return lambda: CertificateCredential(
                tenant_id,
                kcsb.application_client_id,
                certificate_path=kcsb.application_certificate_path,
                **_without_none(password=_secret(kcsb.application_certificate_password)),
                send_certificate_chain=kcsb.send_certificate_chain,
                **options,
            )

        if strategy is AuthStrategy.CERTIFICATE_BYTES:
            return lambda: CertificateCredential(
                tenant_id,
                kcsb.application_client_id,
                certificate_data=kcsb.application_certificate_bytes,
                **_without_none(password=_secret(kcsb.application_certificate_password)),
                send_certificate_chain=kcsb.send_certificate_chain,
                **options,
            )

        if strategy is AuthStrategy.MANAGED_IDENTITY:
            identity = kcsb.managed_service_identity
            if not identity:
                return lambda: ManagedIdentityCredential(**options)
            if "/" in identity:
                # A full ARM id selects a user-assigned identity by resource
                return lambda: ManagedIdentityCredential(identity_config={"mi_res_id": identity}, **options)
            return lambda: ManagedIdentityCredential(client_id=identity, **options)

        if strategy is AuthStrategy.WORKLOAD_IDENTITY:
            return lambda: WorkloadIdentityCredential(
                **_without_none(
                    tenant_id=tenant_id,
                    client_id=kcsb.application_client_id,
                    token_file_path=kcsb.federation_token_file_path,
                ),
                **options,
            )

        if strategy is AuthStrategy.AZ_CLI:
            return lambda: AzureCliCredential(**_without_none(tenant_id=tenant_id), **options)

        if strategy is AuthStrategy.TOKEN_CREDENTIAL:
            credential = kcsb.token_credential
            return lambda: credential

        return lambda: DefaultAzureCredential(**options)


def new_token_provider(kcsb: ConnectionStringBuilder, cloud_info: Optional[CloudInfo] = None) -> TokenProvider:
    """Build the token provider for a connection record."""
    return TokenProviderSelector(cloud_info).new_token_provider(kcsb)
