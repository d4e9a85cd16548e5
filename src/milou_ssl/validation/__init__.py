"""Certificate validation."""

from milou_ssl.validation.validator import Validator, domain_matches

__all__ = ["Validator", "domain_matches"]
