"""
Agency domain and tenant database identifiers.
"""
import re
import secrets

from agencyhub.config import settings
from agencyhub.core.exceptions import InvalidDatabaseNameError, InvalidDomainError

SUBDOMAIN_PATTERN = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?$")
DATABASE_NAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_]*$")

MIN_SUBDOMAIN_LENGTH = 2
MAX_IDENTIFIER_LENGTH = 63  # PostgreSQL NAMEDATALEN - 1
DATABASE_NAME_PREFIX = "agency_"
DATABASE_SUFFIX_BYTES = 4  # 8 hex characters


def normalize_domain(candidate: str) -> str:
    """Reduce a requested domain to its subdomain label.

    ``"Acme.agencyhub.app"``, ``"acme"`` and ``" ACME "`` all normalize to
    ``"acme"``; uniqueness is decided on this value regardless of suffix.
    """
    if candidate is None:
        raise InvalidDomainError("Domain is required")

    subdomain = candidate.strip().lower().split(".", 1)[0]
    if len(subdomain) < MIN_SUBDOMAIN_LENGTH:
        raise InvalidDomainError(
            f"Domain must be at least {MIN_SUBDOMAIN_LENGTH} characters"
        )
    if not SUBDOMAIN_PATTERN.match(subdomain):
        raise InvalidDomainError(
            "Domain may only contain lowercase letters, digits and hyphens, "
            "and must start and end with a letter or digit"
        )
    return subdomain


def full_domain(subdomain: str) -> str:
    return f"{subdomain}{settings.AGENCY_DOMAIN_SUFFIX}"


def generate_database_name(domain: str) -> str:
    """Generate a fresh, collision-resistant database name for a domain.

    Every call returns a new name, so a retry after a failed attempt never
    reuses the previous physical database.
    """
    slug = re.sub(r"[^a-z0-9]", "_", domain.lower())
    slug = re.sub(r"_+", "_", slug).strip("_") or "tenant"

    suffix = secrets.token_hex(DATABASE_SUFFIX_BYTES)
    max_slug = MAX_IDENTIFIER_LENGTH - len(DATABASE_NAME_PREFIX) - len(suffix) - 1
    slug = slug[:max_slug].rstrip("_")

    name = f"{DATABASE_NAME_PREFIX}{slug}_{suffix}"
    validate_database_name(name)
    return name


def validate_database_name(name: str) -> str:
    if not name or len(name) > MAX_IDENTIFIER_LENGTH:
        raise InvalidDatabaseNameError(f"Invalid database name length: {name!r}")
    if not DATABASE_NAME_PATTERN.match(name):
        raise InvalidDatabaseNameError(f"Invalid database name: {name!r}")
    return name


def quote_identifier(name: str) -> str:
    """Quote a validated identifier for use in DDL."""
    validate_database_name(name)
    return '"' + name.replace('"', '""') + '"'
