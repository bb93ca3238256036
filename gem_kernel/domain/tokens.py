"""Unguessable public share tokens for quotation and invoice links."""

import secrets
from uuid import uuid4

QUOTATION_TOKEN_PREFIX = "quote"
INVOICE_TOKEN_PREFIX = "invoice"


def generate_public_token(prefix: str) -> str:
    """``{prefix}_{uuid4}_{16 hex chars}``; the hex tail adds 64 random bits."""
    return f"{prefix}_{uuid4()}_{secrets.token_hex(8)}"


def generate_quotation_token() -> str:
    return generate_public_token(QUOTATION_TOKEN_PREFIX)


def generate_invoice_token() -> str:
    return generate_public_token(INVOICE_TOKEN_PREFIX)
