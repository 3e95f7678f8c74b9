"""
Connection String Builder for Kusto.
Parses semicolon-delimited connection strings into an authentication record
and exposes builder-style mutators, one per authentication mode.
"""
import getpass
import os
import sys
from typing import Any, Dict, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from services.common.exceptions import ConnectionStringError, ValidationError
from .constants import (
    AAD_USER_ID,
    APPLICATION_CLIENT_ID,
    APPLICATION_KEY,
    APPLICATION_TOKEN,
    AUTHORITY_ID,
    BOOL_KEYWORDS,
    CS_DELIMITER,
    CS_VAL_SEPARATOR,
    DATA_SOURCE,
    KEYWORD_ALIASES,
    KEYWORD_FIELDS,
    MASKED_VALUE,
    PASSWORD,
    USER_TOKEN,
)
from .validation_service import ValidationService

logger = structlog.get_logger()

_validation = ValidationService()

# Fields cleared whenever a builder method switches the authentication mode
AUTH_FIELDS = (
    "aad_user_id",
    "password",
    "user_token",
    "application_client_id",
    "application_key",
    "authority_id",
    "application_certificate_path",
    "application_certificate_bytes",
    "application_certificate_password",
    "send_certificate_chain",
    "application_token",
    "az_cli",
    "msi_authentication",
    "managed_service_identity",
    "workload_authentication",
    "federation_token_file_path",
    "interactive_login",
    "redirect_url",
    "default_auth",
    "token_credential",
)


def _lookup_keyword(raw_key: str) -> str:
    key = raw_key.strip()
    keyword = KEYWORD_ALIASES.get(key.lower())
    if keyword is None:
        raise ConnectionStringError(
            f"Unsupported key '{key}' in connection string",
            details={"key": key}
        )
    return keyword


def _require_value(field: str, value: Any) -> None:
    _validation.require_non_empty(field, value)
    _validation.reject_delimiter(field, value)


def _default_application_for_tracing() -> str:
    if sys.argv and sys.argv[0]:
        return os.path.basename(sys.argv[0])
    return "[none]"


def _default_user_for_tracing() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "[none]"


class ConnectionStringBuilder(BaseModel):
    """Authentication record for a Kusto endpoint."""

    model_config = ConfigDict(validate_assignment=True, arbitrary_types_allowed=True)

    data_source: Optional[str] = None
    aad_user_id: Optional[str] = None
    password: Optional[SecretStr] = None
    user_token: Optional[SecretStr] = None
    application_client_id: Optional[str] = None
    application_key: Optional[SecretStr] = None
    authority_id: Optional[str] = None
    application_certificate_path: Optional[str] = None
    application_certificate_bytes: Optional[bytes] = None
    application_certificate_password: Optional[SecretStr] = None
    send_certificate_chain: bool = False
    application_token: Optional[SecretStr] = None
    az_cli: bool = False
    msi_authentication: bool = False
    managed_service_identity: Optional[str] = None
    workload_authentication: bool = False
    federation_token_file_path: Optional[str] = None
    interactive_login: bool = False
    redirect_url: Optional[str] = None
    default_auth: bool = False
    token_credential: Optional[Any] = None

    # Extra keyword arguments forwarded to every azure-identity credential
    credential_options: Dict[str, Any] = Field(default_factory=dict)

    application_for_tracing: str = Field(default_factory=_default_application_for_tracing)
    user_for_tracing: str = Field(default_factory=_default_user_for_tracing)

    # --- Parsing ---

    @classmethod
    def parse(cls, connection_string: str) -> "ConnectionStringBuilder":
        """
        Parse a connection string such as
        ``https://help.kusto.windows.net;AAD User ID=user@contoso.com;Password=...``.

        A leading segment without ``=`` is taken as the data source. Keys are
        case-insensitive, blank segments and blank values are ignored, and a
        repeated key keeps its last value.

        Raises:
            ConnectionStringError: On empty input, malformed segments, unknown keys
                or non-boolean values for boolean keys
        """
        if connection_string is None or not connection_string.strip():
            raise ConnectionStringError("Connection string cannot be empty")

        try:
            kcsb = cls._parse_segments(connection_string)
        except ConnectionStringError as e:
            logger.warning(
                "connection_string_parse_failed",
                connection_string=_validation.mask_connection_string(connection_string),
                error=str(e)
            )
            raise

        logger.debug("connection_string_parsed", connection_string=str(kcsb))
        return kcsb

    @classmethod
    def _parse_segments(cls, connection_string: str) -> "ConnectionStringBuilder":
        segments = connection_string.split(CS_DELIMITER)
        if CS_VAL_SEPARATOR not in segments[0]:
            segments[0] = f"{DATA_SOURCE}{CS_VAL_SEPARATOR}{segments[0]}"

        kcsb = cls()
        for position, segment in enumerate(segments):
            if not segment.strip():
                continue

            key, separator, value = segment.partition(CS_VAL_SEPARATOR)
            if not separator:
                raise ConnectionStringError(
                    f"Invalid connection string segment '{key.strip()}': expected Key=Value",
                    details={"position": position}
                )

            keyword = _lookup_keyword(key)
            value = value.strip()
            if not value:
                continue

            kcsb._assign(keyword, value)

        return kcsb

    @classmethod
    def from_profile(cls, name: Optional[str] = None) -> "ConnectionStringBuilder":
        """Parse the connection string of a configured profile (see config/configuration.py)."""
        from config.configuration import get_config

        return cls.parse(get_config().get_connection_string(name))

    def _assign(self, keyword: str, value: str) -> None:
        field = KEYWORD_FIELDS[keyword]
        if keyword in BOOL_KEYWORDS:
            setattr(self, field, _validation.parse_bool(keyword, value))
        else:
            setattr(self, field, value)

    def _reset_authentication(self) -> None:
        for name in AUTH_FIELDS:
            setattr(self, name, type(self).model_fields[name].default)

    def _require_data_source(self) -> None:
        _validation.require_non_empty(DATA_SOURCE, self.data_source)

    # --- Builder methods ---

    def with_aad_user_password_auth(
        self, user_id: str, password: str, authority_id: Optional[str] = None
    ) -> "ConnectionStringBuilder":
        """Authenticate with an AAD user name and password."""
        self._require_data_source()
        _require_value(AAD_USER_ID, user_id)
        _require_value(PASSWORD, password)
        _validation.reject_delimiter(AUTHORITY_ID, authority_id)

        self._reset_authentication()
        self.aad_user_id = user_id
        self.password = password
        self.authority_id = authority_id
        return self

    def with_aad_user_token(self, user_token: str) -> "ConnectionStringBuilder":
        """Authenticate with a pre-acquired user token."""
        self._require_data_source()
        _require_value(USER_TOKEN, user_token)

        self._reset_authentication()
        self.user_token = user_token
        return self

    def with_aad_app_key(
        self, app_client_id: str, app_key: str, authority_id: str
    ) -> "ConnectionStringBuilder":
        """Authenticate with an AAD application id and client secret."""
        self._require_data_source()
        _require_value(APPLICATION_CLIENT_ID, app_client_id)
        _require_value(APPLICATION_KEY, app_key)
        _require_value(AUTHORITY_ID, authority_id)

        self._reset_authentication()
        self.application_client_id = app_client_id
        self.application_key = app_key
        self.authority_id = authority_id
        return self

    def with_app_certificate_path(
        self,
        app_client_id: str,
        certificate_path: str,
        password: Optional[str] = None,
        send_certificate_chain: bool = False,
        authority_id: Optional[str] = None,
    ) -> "ConnectionStringBuilder":
        """
        Authenticate with an AAD application and a PEM or PKCS12 certificate on disk.

        Args:
            app_client_id: AAD application id
            certificate_path: Path to the certificate file
            password: Optional password of the certificate
            send_certificate_chain: Send the public chain for subject name/issuer auth
            authority_id: Tenant id. Required, azure-identity rejects a certificate
                credential without one
        """
        self._require_data_source()
        _require_value(APPLICATION_CLIENT_ID, app_client_id)
        _require_value("Application Certificate Path", certificate_path)
        _require_value(AUTHORITY_ID, authority_id)

        self._reset_authentication()
        self.application_client_id = app_client_id
        self.application_certificate_path = certificate_path
        self.application_certificate_password = password
        self.send_certificate_chain = send_certificate_chain
        self.authority_id = authority_id
        return self

    def with_app_certificate_bytes(
        self,
        app_client_id: str,
        certificate_bytes: bytes,
        password: Optional[str] = None,
        send_certificate_chain: bool = False,
        authority_id: Optional[str] = None,
    ) -> "ConnectionStringBuilder":
        """
        Authenticate with an AAD application and an in-memory certificate.

        ``authority_id`` is required despite its default, as for
        ``with_app_certificate_path``.
        """
        self._require_data_source()
        _require_value(APPLICATION_CLIENT_ID, app_client_id)
        _require_value("Application Certificate Bytes", certificate_bytes)
        _require_value(AUTHORITY_ID, authority_id)

        self._reset_authentication()
        self.application_client_id = app_client_id
        self.application_certificate_bytes = certificate_bytes
        self.application_certificate_password = password
        self.send_certificate_chain = send_certificate_chain
        self.authority_id = authority_id
        return self

    def with_application_token(
        self, app_client_id: Optional[str], app_token: str
    ) -> "ConnectionStringBuilder":
        """Authenticate with a pre-acquired application token."""
        self._require_data_source()
        _require_value(APPLICATION_TOKEN, app_token)
        _validation.reject_delimiter(APPLICATION_CLIENT_ID, app_client_id)

        self._reset_authentication()
        self.application_client_id = app_client_id
        self.application_token = app_token
        return self

    def with_az_cli(self) -> "ConnectionStringBuilder":
        """Reuse the signed-in Azure CLI profile."""
        self._require_data_source()

        self._reset_authentication()
        self.az_cli = True
        return self

    def with_user_managed_identity(self, client_id: str) -> "ConnectionStringBuilder":
        self._require_data_source()
        _require_value("Managed Identity Client Id", client_id)

        self._reset_authentication()
        self.msi_authentication = True
        self.managed_service_identity = client_id
        return self

    def with_user_assigned_identity_resource_id(self, resource_id: str) -> "ConnectionStringBuilder":
        self._require_data_source()
        _require_value("Managed Identity Resource Id", resource_id)
        if "/" not in resource_id:
            raise ValidationError(
                "Managed Identity Resource Id must be a full Azure resource id",
                details={"field": "Managed Identity Resource Id"}
            )

        self._reset_authentication()
        self.msi_authentication = True
        self.managed_service_identity = resource_id
        return self

    def with_system_managed_identity(self) -> "ConnectionStringBuilder":
        self._require_data_source()

        self._reset_authentication()
        self.msi_authentication = True
        return self

    def with_kubernetes_workload_identity(
        self,
        app_client_id: Optional[str] = None,
        token_file_path: Optional[str] = None,
        authority_id: Optional[str] = None,
    ) -> "ConnectionStringBuilder":
        """
        Authenticate with a federated token projected into a Kubernetes pod.

        Missing values fall back to the AZURE_CLIENT_ID, AZURE_FEDERATED_TOKEN_FILE
        and AZURE_TENANT_ID variables injected by the workload identity webhook.
        """
        self._require_data_source()
        app_client_id = app_client_id or os.environ.get("AZURE_CLIENT_ID")
        token_file_path = token_file_path or os.environ.get("AZURE_FEDERATED_TOKEN_FILE")
        authority_id = authority_id or os.environ.get("AZURE_TENANT_ID")
        _require_value(APPLICATION_CLIENT_ID, app_client_id)
        _require_value("Federation Token File Path", token_file_path)
        _validation.reject_delimiter(AUTHORITY_ID, authority_id)

        self._reset_authentication()
        self.application_client_id = app_client_id
        self.federation_token_file_path = token_file_path
        self.authority_id = authority_id
        self.workload_authentication = True
        return self

    def with_interactive_login(self, authority_id: Optional[str] = None) -> "ConnectionStringBuilder":
        """Sign in through the system browser."""
        self._require_data_source()
        _validation.reject_delimiter(AUTHORITY_ID, authority_id)

        self._reset_authentication()
        self.interactive_login = True
        self.authority_id = authority_id
        return self

    def with_default_azure_credential(self) -> "ConnectionStringBuilder":
        self._require_data_source()

        self._reset_authentication()
        self.default_auth = True
        return self

    def with_token_credential(self, credential: Any) -> "ConnectionStringBuilder":
        """Use a caller-supplied azure.core TokenCredential as-is."""
        self._require_data_source()
        if credential is None or not callable(getattr(credential, "get_token", None)):
            raise ValidationError("Token Credential must provide get_token()", details={"field": "Token Credential"})

        self._reset_authentication()
        self.token_credential = credential
        return self

    def attach_credential_options(self, **options: Any) -> "ConnectionStringBuilder":
        """Forward extra keyword arguments to the azure-identity credential constructor."""
        self.credential_options = {**self.credential_options, **options}
        return self

    def set_connector_details(
        self, application_for_tracing: Optional[str] = None, user_for_tracing: Optional[str] = None
    ) -> "ConnectionStringBuilder":
        if application_for_tracing:
            self.application_for_tracing = application_for_tracing
        if user_for_tracing:
            self.user_for_tracing = user_for_tracing
        return self

    # --- Validation ---

    def validate_auth(self) -> None:
        """
        Check required-field combinations.

        Raises:
            ValidationError: If a mode is only partially configured
        """
        is_valid, error = _validation.validate_data_source(self.data_source)
        if not is_valid:
            raise ValidationError(error, details={"field": DATA_SOURCE})

        if self.password and not self.aad_user_id:
            raise ValidationError(f"{PASSWORD} requires {AAD_USER_ID}", details={"field": AAD_USER_ID})

        if self.application_key and not self.application_client_id:
            raise ValidationError(
                f"{APPLICATION_KEY} requires {APPLICATION_CLIENT_ID}", details={"field": APPLICATION_CLIENT_ID}
            )

        has_certificate = self.application_certificate_path or self.application_certificate_bytes
        if has_certificate and not self.application_client_id:
            raise ValidationError(
                f"Application Certificate requires {APPLICATION_CLIENT_ID}", details={"field": APPLICATION_CLIENT_ID}
            )

        if (self.application_key or has_certificate) and not self.authority_id:
            raise ValidationError(
                f"Application credentials require {AUTHORITY_ID}", details={"field": AUTHORITY_ID}
            )

        if self.workload_authentication:
            if not self.application_client_id:
                raise ValidationError(
                    f"Workload identity requires {APPLICATION_CLIENT_ID}", details={"field": APPLICATION_CLIENT_ID}
                )
            if not self.federation_token_file_path:
                raise ValidationError(
                    "Workload identity requires Federation Token File Path",
                    details={"field": "Federation Token File Path"}
                )

    # --- Rendering ---

    def to_connection_string(self, mask_secrets: bool = True) -> str:
        """
        Render the string-representable fields back to ``Key=Value;...`` form.

        Raises:
            ValidationError: If a value contains the ``;`` delimiter
        """
        parts = []
        for keyword, field in KEYWORD_FIELDS.items():
            value = getattr(self, field)
            if value is None or value is False or value == "":
                continue
            if value is True:
                value = "true"
            elif isinstance(value, SecretStr):
                value = MASKED_VALUE if mask_secrets else value.get_secret_value()
            _validation.reject_delimiter(keyword, value)
            parts.append(f"{keyword}{CS_VAL_SEPARATOR}{value}")
        return CS_DELIMITER.join(parts)

    def __str__(self) -> str:
        return self.to_connection_string(mask_secrets=True)
