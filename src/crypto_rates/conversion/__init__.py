"""Point-in-time currency conversion."""

from crypto_rates.conversion.resolver import ConversionResolver, parse_target_time

__all__ = ["ConversionResolver", "parse_target_time"]
