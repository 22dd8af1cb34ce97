"""
Canonical encoding rules.

This file exists to make the storage contract explicit and enforceable.
"""

CANONICAL_ENCODING = "utf-8"

# Promotion keeps every byte; malformed ones become lone surrogates U+DC80..U+DCFF
PROMOTION_ERRORS = "surrogateescape"

# Values of any other type (None, numbers, containers, SQL expressions) never participate
SCALAR_TYPES = (str, bytes, bytearray)
