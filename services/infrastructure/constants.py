"""Constants for Kusto connection string parsing.

Canonical keyword names, their accepted aliases, and the builder
field each keyword populates.
"""

# Connection string grammar
CS_DELIMITER = ";"
CS_VAL_SEPARATOR = "="

# Canonical keywords
DATA_SOURCE = "Data Source"
AAD_USER_ID = "AAD User ID"
PASSWORD = "Password"
APPLICATION_CLIENT_ID = "Application Client Id"
APPLICATION_KEY = "Application Key"
APPLICATION_CERTIFICATE = "Application Certificate"
AUTHORITY_ID = "Authority Id"
APPLICATION_TOKEN = "Application Token"
USER_TOKEN = "User Token"
MSI_AUTH = "MSI Authentication"
MANAGED_SERVICE_IDENTITY = "Managed Service Identity"
AZ_CLI = "AZ CLI"
INTERACTIVE_LOGIN = "Interactive Login"
DOMAIN_HINT = "Domain Hint"

# Lowercased alias -> canonical keyword
KEYWORD_ALIASES = {
    "datasource": DATA_SOURCE,
    "data source": DATA_SOURCE,
    "addr": DATA_SOURCE,
    "address": DATA_SOURCE,
    "network address": DATA_SOURCE,
    "server": DATA_SOURCE,
    "aad user id": AAD_USER_ID,
    "user id": AAD_USER_ID,
    "uid": AAD_USER_ID,
    "user": AAD_USER_ID,
    "password": PASSWORD,
    "pwd": PASSWORD,
    "application client id": APPLICATION_CLIENT_ID,
    "appclientid": APPLICATION_CLIENT_ID,
    "application key": APPLICATION_KEY,
    "appkey": APPLICATION_KEY,
    "application certificate": APPLICATION_CERTIFICATE,
    "authority id": AUTHORITY_ID,
    "authorityid": AUTHORITY_ID,
    "authority": AUTHORITY_ID,
    "tenantid": AUTHORITY_ID,
    "tenant": AUTHORITY_ID,
    "tid": AUTHORITY_ID,
    "application token": APPLICATION_TOKEN,
    "apptoken": APPLICATION_TOKEN,
    "user token": USER_TOKEN,
    "usertoken": USER_TOKEN,
    "msi authentication": MSI_AUTH,
    "msi auth": MSI_AUTH,
    "msi_auth": MSI_AUTH,
    "msi": MSI_AUTH,
    "managed service identity": MANAGED_SERVICE_IDENTITY,
    "managedserviceidentity": MANAGED_SERVICE_IDENTITY,
    "az cli": AZ_CLI,
    "azcli": AZ_CLI,
    "interactive login": INTERACTIVE_LOGIN,
    "interactivelogin": INTERACTIVE_LOGIN,
    "domain hint": DOMAIN_HINT,
    "domainhint": DOMAIN_HINT,
}

# Canonical keyword -> builder field, in rendering order
KEYWORD_FIELDS = {
    DATA_SOURCE: "data_source",
    AAD_USER_ID: "aad_user_id",
    PASSWORD: "password",
    USER_TOKEN: "user_token",
    APPLICATION_CLIENT_ID: "application_client_id",
    APPLICATION_KEY: "application_key",
    AUTHORITY_ID: "authority_id",
    APPLICATION_CERTIFICATE: "application_certificate_path",
    APPLICATION_TOKEN: "application_token",
    AZ_CLI: "az_cli",
    MSI_AUTH: "msi_authentication",
    MANAGED_SERVICE_IDENTITY: "managed_service_identity",
    INTERACTIVE_LOGIN: "interactive_login",
    DOMAIN_HINT: "redirect_url",
}

BOOL_KEYWORDS = {AZ_CLI, MSI_AUTH, INTERACTIVE_LOGIN}

TRUE_VALUES = {"1", "t", "T", "TRUE", "true", "True"}
FALSE_VALUES = {"0", "f", "F", "FALSE", "false", "False"}

MASKED_VALUE = "****"
