"""
Domain validation and normalization module.

Validation here is advisory and syntactic: a hostname is one or more label
characters, a literal dot, and an alphabetic top-level label of at least two
letters. It is not a complete DNS name check.
"""

import re
from dataclasses import dataclass
from typing import Optional

import idna

from custom_hosts.enums import DomainValidationErrorCode
from custom_hosts.exceptions import ValidationError


HOSTNAME_PATTERN = re.compile(r"^[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

# Control characters and whitespace anywhere in the input
FORBIDDEN_CHARS_PATTERN = re.compile(r"[\x00-\x1f\x7f\s]")


@dataclass
class DomainValidationError:
    """Structured error information for domain validation failures."""

    code: DomainValidationErrorCode
    message: str
    details: dict


@dataclass
class DomainValidationResult:
    """Result of domain validation operation."""

    valid: bool
    canonical_domain: Optional[str]
    error: Optional[DomainValidationError]


class DomainValidator:
    """
    Validates and normalizes domain names.

    Handles:
    - Conversion to lowercase canonical form
    - IDNA encoding for international characters
    - Rejection of whitespace and control characters
    - The hostname pattern check
    """

    def validate(self, raw_domain: Optional[str]) -> DomainValidationResult:
        """
        Validate and normalize a domain string.

        Args:
            raw_domain: The raw domain string to validate

        Returns:
            DomainValidationResult with validation status and canonical form or error
        """
        if not raw_domain or not isinstance(raw_domain, str) or not raw_domain.strip():
            return self._failure(
                DomainValidationErrorCode.EMPTY_INPUT,
                "Domain is required",
                {"raw_input": raw_domain},
            )

        domain = raw_domain.strip()

        if FORBIDDEN_CHARS_PATTERN.search(domain):
            return self._failure(
                DomainValidationErrorCode.FORBIDDEN_CHARS,
                "Domain contains whitespace or control characters",
                {"raw_input": raw_domain},
            )

        try:
            canonical = self.normalize_to_canonical(domain)
        except ValidationError as e:
            return self._failure(DomainValidationErrorCode.IDNA_ERROR, e.message, e.details)

        if not HOSTNAME_PATTERN.match(canonical):
            return self._failure(
                DomainValidationErrorCode.INVALID_FORMAT,
                "Invalid domain format",
                {"raw_input": raw_domain, "canonical": canonical},
            )

        return DomainValidationResult(valid=True, canonical_domain=canonical, error=None)

    def normalize_to_canonical(self, domain: str) -> str:
        """
        Convert domain to canonical form (lowercase, IDNA-encoded, no trailing dot).

        Raises:
            ValidationError: If IDNA encoding fails
        """
        domain_lower = domain.strip().lower().rstrip(".")

        if any(ord(c) > 127 for c in domain_lower):
            try:
                return idna.encode(domain_lower, uts46=True).decode("ascii")
            except idna.IDNAError as e:
                raise ValidationError(
                    code=DomainValidationErrorCode.IDNA_ERROR.value,
                    message=f"IDNA encoding failed: {e}",
                    details={"domain": domain, "idna_error": str(e)},
                )

        return domain_lower

    def require_valid(self, raw_domain: Optional[str]) -> str:
        """
        Validate a domain and return its canonical form.

        Raises:
            ValidationError: If the domain is rejected
        """
        result = self.validate(raw_domain)
        if not result.valid:
            raise ValidationError(
                code=result.error.code.value,
                message=result.error.message,
                details=result.error.details,
            )
        return result.canonical_domain

    def is_valid(self, raw_domain: Optional[str]) -> bool:
        return self.validate(raw_domain).valid

    @staticmethod
    def _failure(
        code: DomainValidationErrorCode, message: str, details: dict
    ) -> DomainValidationResult:
        return DomainValidationResult(
            valid=False,
            canonical_domain=None,
            error=DomainValidationError(code=code, message=message, details=details),
        )
