"""
Unit tests for ConnectionStringBuilder.
Tests connection string grammar, builder methods and field validation.
"""
import pytest
from pydantic import SecretStr
from structlog.testing import capture_logs
from services.infrastructure.connection_string_builder import ConnectionStringBuilder
from services.common.exceptions import ConnectionStringError, ValidationError

TRACING_FIELDS = {"application_for_tracing", "user_for_tracing"}


def auth_fields(kcsb: ConnectionStringBuilder) -> dict:
    return kcsb.model_dump(exclude=TRACING_FIELDS)


class TestParse:
    def test_bare_url_is_data_source(self):
        kcsb = ConnectionStringBuilder.parse("https://endpoint")
        assert auth_fields(kcsb) == auth_fields(ConnectionStringBuilder(data_source="https://endpoint"))

    @pytest.mark.parametrize("connection_string", ["", "   "])
    def test_empty_connection_string(self, connection_string):
        with pytest.raises(ConnectionStringError) as exc:
            ConnectionStringBuilder.parse(connection_string)
        assert "Connection string cannot be empty" in str(exc.value)

    def test_full_string(self):
        """Every keyword, mixed case, stray whitespace, a blank segment and a repeated key."""
        kcsb = ConnectionStringBuilder.parse(
            "https://help.kusto.windows.net/Samples;aad user id=1234;password=****;application key=1234;"
            "application client id=1234;application key=0987;application certificate=avsefsfbsrgbrb; "
            "authority id=123456;application token=token;user token=usertoken;;interactivelogin=false; "
            "domainhint=www.google.com"
        )
        expected = ConnectionStringBuilder(
            data_source="https://help.kusto.windows.net/Samples",
            aad_user_id="1234",
            password=SecretStr("****"),
            user_token=SecretStr("usertoken"),
            application_client_id="1234",
            application_key=SecretStr("0987"),
            authority_id="123456",
            application_certificate_path="avsefsfbsrgbrb",
            application_token=SecretStr("token"),
            interactive_login=False,
            redirect_url="www.google.com",
        )
        assert auth_fields(kcsb) == auth_fields(expected)

    def test_aliases_are_case_insensitive(self):
        kcsb = ConnectionStringBuilder.parse(
            "Server=https://c.kusto.windows.net;UID=me@contoso.com;PWD=secret;TenantId=contoso.com"
        )
        assert kcsb.data_source == "https://c.kusto.windows.net"
        assert kcsb.aad_user_id == "me@contoso.com"
        assert kcsb.password.get_secret_value() == "secret"
        assert kcsb.authority_id == "contoso.com"

    def test_explicit_data_source_keyword(self):
        kcsb = ConnectionStringBuilder.parse("Data Source=https://c.kusto.windows.net;AppClientId=app")
        assert kcsb.data_source == "https://c.kusto.windows.net"
        assert kcsb.application_client_id == "app"

    def test_value_may_contain_equals(self):
        kcsb = ConnectionStringBuilder.parse("https://c;AppKey=abc==;User Token=a=b")
        assert kcsb.application_key.get_secret_value() == "abc=="
        assert kcsb.user_token.get_secret_value() == "a=b"

    def test_blank_values_are_skipped(self):
        kcsb = ConnectionStringBuilder.parse("https://c;Authority Id=  ;AAD User ID=")
        assert kcsb.authority_id is None
        assert kcsb.aad_user_id is None

    @pytest.mark.parametrize("raw,expected", [
        ("true", True), ("True", True), ("TRUE", True), ("1", True), ("t", True),
        ("false", False), ("False", False), ("0", False), ("F", False),
    ])
    def test_bool_values(self, raw, expected):
        kcsb = ConnectionStringBuilder.parse(f"https://c;MSI Auth={raw};AZ CLI={raw};Interactive Login={raw}")
        assert kcsb.msi_authentication is expected
        assert kcsb.az_cli is expected
        assert kcsb.interactive_login is expected

    def test_invalid_bool_value(self):
        with pytest.raises(ConnectionStringError) as exc:
            ConnectionStringBuilder.parse("https://c;msi=yes")
        assert "boolean" in str(exc.value)
        assert exc.value.details["keyword"] == "MSI Authentication"

    def test_unknown_key(self):
        with pytest.raises(ConnectionStringError) as exc:
            ConnectionStringBuilder.parse("https://c;Initial Catalog=Samples")
        assert "Unsupported key 'Initial Catalog'" in str(exc.value)

    def test_unknown_key_with_blank_value(self):
        with pytest.raises(ConnectionStringError) as exc:
            ConnectionStringBuilder.parse("https://c;Bogus=")
        assert exc.value.details["key"] == "Bogus"

    def test_repeated_bool_key_last_value_wins(self):
        kcsb = ConnectionStringBuilder.parse("https://c;AZ CLI=true;azcli=false;msi=false;MSI Auth=true")
        assert kcsb.az_cli is False
        assert kcsb.msi_authentication is True

    def test_parse_failure_logs_masked_input(self):
        with capture_logs() as logs:
            with pytest.raises(ConnectionStringError):
                ConnectionStringBuilder.parse("https://c;Password=hunter2;Bogus=1")

        failures = [entry for entry in logs if entry["event"] == "connection_string_parse_failed"]
        assert len(failures) == 1
        assert "hunter2" not in failures[0]["connection_string"]
        assert "Password=****" in failures[0]["connection_string"]

    def test_segment_without_separator(self):
        with pytest.raises(ConnectionStringError) as exc:
            ConnectionStringBuilder.parse("https://c;msi=true;garbage")
        assert "expected Key=Value" in str(exc.value)
        assert exc.value.details["position"] == 2

    def test_managed_identity_keywords(self):
        kcsb = ConnectionStringBuilder.parse("https://c;MSI=true;Managed Service Identity=client-guid")
        assert kcsb.msi_authentication is True
        assert kcsb.managed_service_identity == "client-guid"


class TestBuilderMethods:
    def test_with_aad_user_password_auth(self):
        actual = ConnectionStringBuilder.parse("endpoint").with_aad_user_password_auth(
            "userid", "password", "authorityID"
        )
        expected = ConnectionStringBuilder(
            data_source="endpoint",
            aad_user_id="userid",
            password=SecretStr("password"),
            authority_id="authorityID",
        )
        assert auth_fields(actual) == auth_fields(expected)

    def test_with_aad_user_password_auth_missing_password(self):
        with pytest.raises(ValidationError) as exc:
            ConnectionStringBuilder.parse("endpoint").with_aad_user_password_auth("userid", "", "authorityID")
        assert str(exc.value) == "Password cannot be empty"

    def test_with_aad_user_token(self):
        actual = ConnectionStringBuilder.parse("endpoint").with_aad_user_token("token")
        expected = ConnectionStringBuilder(data_source="endpoint", user_token=SecretStr("token"))
        assert auth_fields(actual) == auth_fields(expected)

    def test_with_aad_user_token_missing(self):
        with pytest.raises(ValidationError) as exc:
            ConnectionStringBuilder.parse("endpoint").with_aad_user_token("")
        assert str(exc.value) == "User Token cannot be empty"

    def test_with_kubernetes_workload_identity(self):
        actual = ConnectionStringBuilder.parse("endpoint").with_kubernetes_workload_identity(
            "clientID", "tokenfilepath", "authorityID"
        )
        expected = ConnectionStringBuilder(
            data_source="endpoint",
            application_client_id="clientID",
            authority_id="authorityID",
            federation_token_file_path="tokenfilepath",
            workload_authentication=True,
        )
        assert auth_fields(actual) == auth_fields(expected)

    def test_workload_identity_falls_back_to_environment(self, monkeypatch):
        monkeypatch.setenv("AZURE_CLIENT_ID", "env-client")
        monkeypatch.setenv("AZURE_TENANT_ID", "env-tenant")
        monkeypatch.setenv("AZURE_FEDERATED_TOKEN_FILE", "/var/run/secrets/token")

        kcsb = ConnectionStringBuilder.parse("endpoint").with_kubernetes_workload_identity()

        assert kcsb.application_client_id == "env-client"
        assert kcsb.authority_id == "env-tenant"
        assert kcsb.federation_token_file_path == "/var/run/secrets/token"

    def test_workload_identity_requires_token_file(self, monkeypatch):
        monkeypatch.delenv("AZURE_FEDERATED_TOKEN_FILE", raising=False)
        with pytest.raises(ValidationError) as exc:
            ConnectionStringBuilder.parse("endpoint").with_kubernetes_workload_identity("clientID")
        assert "Federation Token File Path" in str(exc.value)

    def test_with_aad_app_key_requires_authority(self):
        with pytest.raises(ValidationError) as exc:
            ConnectionStringBuilder.parse("endpoint").with_aad_app_key("app", "key", "")
        assert exc.value.details["field"] == "Authority Id"

    def test_with_app_certificate_path(self):
        kcsb = ConnectionStringBuilder.parse("endpoint").with_app_certificate_path(
            "app", "/certs/app.pem", password="pfx-pass", send_certificate_chain=True, authority_id="tenant"
        )
        assert kcsb.application_certificate_path == "/certs/app.pem"
        assert kcsb.application_certificate_password.get_secret_value() == "pfx-pass"
        assert kcsb.send_certificate_chain is True

    def test_with_app_certificate_bytes_requires_authority(self):
        with pytest.raises(ValidationError) as exc:
            ConnectionStringBuilder.parse("endpoint").with_app_certificate_bytes("app", b"pem")
        assert exc.value.details["field"] == "Authority Id"

    @pytest.mark.parametrize("password,authority_id,field", [
        ("pa;ss", "tenant", "Password"),
        ("pass", "ten;ant", "Authority Id"),
    ])
    def test_values_with_delimiter_rejected(self, password, authority_id, field):
        with pytest.raises(ValidationError) as exc:
            ConnectionStringBuilder.parse("endpoint").with_aad_user_password_auth("me", password, authority_id)
        assert exc.value.details["field"] == field

    def test_with_app_certificate_bytes(self):
        kcsb = ConnectionStringBuilder.parse("endpoint").with_app_certificate_bytes(
            "app", b"-----BEGIN CERTIFICATE-----", authority_id="tenant"
        )
        assert kcsb.application_certificate_bytes == b"-----BEGIN CERTIFICATE-----"
        assert kcsb.application_certificate_password is None

    def test_with_user_assigned_identity_resource_id_must_be_arm_id(self):
        with pytest.raises(ValidationError):
            ConnectionStringBuilder.parse("endpoint").with_user_assigned_identity_resource_id("not-an-arm-id")

    def test_builder_requires_data_source(self):
        with pytest.raises(ValidationError) as exc:
            ConnectionStringBuilder().with_az_cli()
        assert str(exc.value) == "Data Source cannot be empty"

    def test_with_token_credential_requires_get_token(self):
        with pytest.raises(ValidationError):
            ConnectionStringBuilder.parse("endpoint").with_token_credential(object())

    def test_switching_mode_clears_previous_fields(self):
        kcsb = (
            ConnectionStringBuilder.parse("https://c;AAD User ID=me;Password=pw;Domain Hint=contoso.com")
            .with_system_managed_identity()
        )
        expected = ConnectionStringBuilder(data_source="https://c", msi_authentication=True)
        assert auth_fields(kcsb) == auth_fields(expected)

    def test_attach_credential_options_survives_mode_switch(self):
        kcsb = (
            ConnectionStringBuilder.parse("endpoint")
            .attach_credential_options(authority="https://login.microsoftonline.us")
            .with_az_cli()
            .attach_credential_options(process_timeout=30)
        )
        assert kcsb.credential_options == {"authority": "https://login.microsoftonline.us", "process_timeout": 30}

    def test_set_connector_details(self):
        kcsb = ConnectionStringBuilder.parse("endpoint").set_connector_details("ingest-job", "svc-account")
        assert kcsb.application_for_tracing == "ingest-job"
        assert kcsb.user_for_tracing == "svc-account"


class TestValidateAuth:
    def test_password_without_user(self):
        kcsb = ConnectionStringBuilder.parse("https://c;Password=pw")
        with pytest.raises(ValidationError) as exc:
            kcsb.validate_auth()
        assert exc.value.details["field"] == "AAD User ID"

    def test_key_without_client_id(self):
        kcsb = ConnectionStringBuilder.parse("https://c;AppKey=k;Authority=t")
        with pytest.raises(ValidationError):
            kcsb.validate_auth()

    def test_certificate_without_client_id(self):
        kcsb = ConnectionStringBuilder.parse("https://c;Application Certificate=/certs/app.pem")
        with pytest.raises(ValidationError):
            kcsb.validate_auth()

    def test_workload_without_token_file(self):
        kcsb = ConnectionStringBuilder(
            data_source="https://c", application_client_id="app", workload_authentication=True
        )
        with pytest.raises(ValidationError):
            kcsb.validate_auth()

    def test_workload_without_client_id(self):
        kcsb = ConnectionStringBuilder(
            data_source="https://c", federation_token_file_path="/var/run/token", workload_authentication=True
        )
        with pytest.raises(ValidationError) as exc:
            kcsb.validate_auth()
        assert exc.value.details["field"] == "Application Client Id"

    @pytest.mark.parametrize("connection_string", [
        "https://c;AppClientId=app;AppKey=secret",
        "https://c;AppClientId=app;Application Certificate=/certs/app.pem",
    ])
    def test_application_credentials_without_authority(self, connection_string):
        with pytest.raises(ValidationError) as exc:
            ConnectionStringBuilder.parse(connection_string).validate_auth()
        assert exc.value.details["field"] == "Authority Id"

    def test_missing_data_source(self):
        with pytest.raises(ValidationError) as exc:
            ConnectionStringBuilder(aad_user_id="me").validate_auth()
        assert exc.value.details["field"] == "Data Source"

    def test_valid_record(self):
        ConnectionStringBuilder.parse("https://c;AAD User ID=me;Password=pw").validate_auth()


class TestRendering:
    def test_secrets_are_masked(self):
        kcsb = ConnectionStringBuilder.parse("https://c;AppClientId=app;AppKey=s3cr3t;Authority=tenant")
        rendered = str(kcsb)
        assert "s3cr3t" not in rendered
        assert rendered == "Data Source=https://c;Application Client Id=app;Application Key=****;Authority Id=tenant"

    def test_unmasked_round_trip(self):
        original = ConnectionStringBuilder.parse("https://c;User ID=me;Password=pw;MSI=true")
        reparsed = ConnectionStringBuilder.parse(original.to_connection_string(mask_secrets=False))
        assert auth_fields(reparsed) == auth_fields(original)

    def test_value_with_delimiter_is_not_rendered(self):
        kcsb = ConnectionStringBuilder(data_source="https://c", aad_user_id="me", password=SecretStr("x;AppKey=y"))
        with pytest.raises(ValidationError) as exc:
            kcsb.to_connection_string(mask_secrets=False)
        assert exc.value.details["field"] == "Password"
        assert str(kcsb) == "Data Source=https://c;AAD User ID=me;Password=****"
