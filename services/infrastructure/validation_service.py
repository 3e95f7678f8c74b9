"""
Validation Service for Kusto connection strings
Centralized field validation and secret masking
"""
import re
from typing import Any, Optional, Tuple
from services.common.exceptions import ConnectionStringError, ValidationError
from .constants import (
    APPLICATION_KEY,
    APPLICATION_TOKEN,
    CS_DELIMITER,
    FALSE_VALUES,
    KEYWORD_ALIASES,
    MASKED_VALUE,
    PASSWORD,
    TRUE_VALUES,
    USER_TOKEN,
)

SECRET_KEYWORDS = {PASSWORD, APPLICATION_KEY, APPLICATION_TOKEN, USER_TOKEN}


class ValidationService:
    """Service for validating connection fields and masking secrets."""

    def __init__(self):
        """Compile the secret-masking pattern from every alias of a secret keyword."""
        secret_aliases = sorted(
            (alias for alias, keyword in KEYWORD_ALIASES.items() if keyword in SECRET_KEYWORDS),
            key=len,
            reverse=True,
        )
        alternation = "|".join(
            r"\s*".join(re.escape(part) for part in alias.split(" ")) for alias in secret_aliases
        )
        self.secret_pattern = re.compile(
            rf"((?:^|;)\s*(?:{alternation})\s*=)([^;]*)",
            re.IGNORECASE,
        )

    @staticmethod
    def require_non_empty(field: str, value: Any) -> None:
        """
        Raise if a required value is missing.

        Args:
            field: Display name of the field
            value: Value to check (str, bytes or SecretStr)

        Raises:
            ValidationError: If the value is None or blank
        """
        if hasattr(value, "get_secret_value"):
            value = value.get_secret_value()
        if value is None or (isinstance(value, (str, bytes)) and not value.strip()):
            raise ValidationError(f"{field} cannot be empty", details={"field": field})

    @staticmethod
    def reject_delimiter(field: str, value: Any) -> None:
        """Raise if a value would split into extra segments when rendered. None is allowed."""
        if hasattr(value, "get_secret_value"):
            value = value.get_secret_value()
        if isinstance(value, str) and CS_DELIMITER in value:
            raise ValidationError(
                f"{field} cannot contain '{CS_DELIMITER}'", details={"field": field}
            )

    @staticmethod
    def parse_bool(keyword: str, value: str) -> bool:
        """
        Parse a boolean connection string value.

        Args:
            keyword: Canonical keyword the value belongs to
            value: Raw (trimmed) value

        Returns:
            Parsed boolean
        """
        if value in TRUE_VALUES:
            return True
        if value in FALSE_VALUES:
            return False
        raise ConnectionStringError(
            f"Expected a boolean value for '{keyword}', received '{value}'",
            details={"keyword": keyword}
        )

    @staticmethod
    def validate_data_source(data_source: Optional[str]) -> Tuple[bool, Optional[str]]:
        """
        Validate that a data source is present.

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not data_source or not data_source.strip():
            return False, "Data Source cannot be empty"

        if any(ch.isspace() for ch in data_source.strip()):
            return False, "Data Source cannot contain whitespace"

        return True, None

    def mask_connection_string(self, connection_string: str) -> str:
        """
        Mask secret values in a raw connection string.

        Args:
            connection_string: Connection string to mask

        Returns:
            Masked connection string
        """
        return self.secret_pattern.sub(rf"\g<1>{MASKED_VALUE}", connection_string)
