"""
Input validation utilities for ingestion settings.

The target table name is interpolated into DDL and COPY INTO statements and
the broker list is handed to librdkafka, so both are checked once when the
configuration is built.
"""

import re

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
BROKER_PATTERN = re.compile(r"^[^:\s]+:\d{1,5}$")
MAX_IDENTIFIER_LENGTH = 255

# Names Databend would parse as statements or objects rather than identifiers
RESERVED_KEYWORDS = frozenset({
    "alter", "copy", "create", "database", "delete", "drop", "grant", "index",
    "insert", "revoke", "select", "stage", "table", "update", "user", "view",
})


class ValidationError(ValueError):
    """Raised when a setting is malformed."""


def sanitize_sql_identifier(identifier: str, field_name: str = "identifier") -> str:
    """
    Check one unquoted SQL identifier (a database or table name).

    Args:
        identifier: The identifier; surrounding whitespace is removed
        field_name: Setting name used in error messages

    Returns:
        The stripped identifier

    Raises:
        ValidationError: If it is empty, too long, a reserved word, or holds
            anything but letters, digits and underscores

    Examples:
        >>> sanitize_sql_identifier(" test_ingest ")
        'test_ingest'
    """
    if not isinstance(identifier, str) or not identifier:
        raise ValidationError(f"{field_name} must be a non-empty string")

    name = identifier.strip()
    if not IDENTIFIER_PATTERN.match(name):
        raise ValidationError(
            f"{field_name} '{name}' contains invalid characters; use letters, digits "
            "and underscores, starting with a letter or underscore"
        )
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(f"{field_name} exceeds maximum length of {MAX_IDENTIFIER_LENGTH} characters")
    if name.lower() in RESERVED_KEYWORDS:
        raise ValidationError(f"{field_name} '{name}' is a reserved SQL keyword")

    return name


def sanitize_table_name(table: str, field_name: str = "databend_table") -> str:
    """
    Validate a table name, optionally qualified with its database.

    Args:
        table: Table name such as "events" or "analytics.events"
        field_name: Name of the field (for error messages)

    Returns:
        The validated table name

    Raises:
        ValidationError: If either part is not a safe identifier

    Examples:
        >>> sanitize_table_name("default.test_ingest")
        'default.test_ingest'
    """
    if not table or not isinstance(table, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    parts = table.strip().split(".")
    if len(parts) > 2:
        raise ValidationError(
            f"{field_name} must be '<table>' or '<database>.<table>', got '{table}'"
        )

    return ".".join(sanitize_sql_identifier(part, field_name) for part in parts)


def parse_bootstrap_servers(servers: str, field_name: str = "kafka_bootstrap_servers") -> list[str]:
    """
    Split a comma-separated list of Kafka brokers.

    Args:
        servers: Comma-separated host:port pairs
        field_name: Name of the field (for error messages)

    Returns:
        List of broker addresses with surrounding whitespace removed

    Raises:
        ValidationError: If no broker is given or an entry has no port
    """
    if not servers or not isinstance(servers, str):
        raise ValidationError(f"{field_name} must be a non-empty string")

    brokers = [server.strip() for server in servers.split(",") if server.strip()]
    if not brokers:
        raise ValidationError(f"{field_name} should have at least one kafka server")

    for broker in brokers:
        if not BROKER_PATTERN.match(broker):
            raise ValidationError(
                f"{field_name} entry '{broker}' must be in host:port form"
            )

    return brokers
