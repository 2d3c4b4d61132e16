"""Prompt construction and request serialization for transaction cleanup.

This module builds:
- A deterministic JSON serialization of classification items with a fixed
  field order.
- The system instructions (allowed categories enumerated verbatim) and the
  user content with the items delimited by BEGIN_/END_ markers.
- The strict ``response_format`` (JSON Schema) object for the OpenAI
  Responses API.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import Any

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

from .models import ClassificationItem

ITEM_FIELD_ORDER: tuple[str, ...] = (
    "transaction_id",
    "original_description",
    "transaction_date",
    "platform_order_details",
    "previous_transactions",
)

BEGIN_MARKER = "BEGIN_TRANSACTIONS_JSON"
END_MARKER = "END_TRANSACTIONS_JSON"


def item_to_payload(item: ClassificationItem) -> dict[str, Any]:
    """Return the JSON-ready mapping for one item (fields in ITEM_FIELD_ORDER).

    Optional fields that are empty are omitted.
    """

    out: dict[str, Any] = {
        "transaction_id": item.transaction_id,
        "original_description": item.original_description or "",
    }
    if item.transaction_date is not None:
        out["transaction_date"] = item.transaction_date.isoformat()
    if item.platform_order_details:
        out["platform_order_details"] = item.platform_order_details
    out["previous_transactions"] = [
        {
            "original_description": c.original_description or "",
            "updated_description": c.updated_description,
            "category": c.category,
        }
        for c in item.previous_transactions
    ]
    return out


def serialize_items_to_json(items: Sequence[ClassificationItem]) -> str:
    return json.dumps([item_to_payload(i) for i in items], ensure_ascii=False)


def build_system_instructions(categories: Sequence[str], fallback_category: str) -> str:
    """Return the system prompt; the allowed categories are listed verbatim."""

    category_lines = "\n".join(f"- {c}" for c in categories)
    return (
        "You clean up personal-finance bank transactions. For every transaction "
        "return a short, human-readable description and exactly one category.\n\n"
        "Rules:\n"
        "1. If previous_transactions is non-empty and one of them clearly refers to "
        "the same merchant, reuse its updated_description and category exactly.\n"
        "2. Otherwise write a clean description: strip punctuation, reference numbers "
        "and IDs, legal suffixes (Ltd, LLC, Inc) and payment-platform prefixes, and "
        "use the merchant's common name. Use platform_order_details, when present, "
        "to describe what was actually bought.\n"
        "3. Choose the category only from the allowed list below, copied exactly.\n"
        f'4. If you are not confident, use the category "{fallback_category}".\n'
        "5. Return one entry per transaction_id you were given. Output JSON only "
        "that conforms to the specified schema, with no extra text.\n\n"
        f"Allowed categories:\n{category_lines}\n- {fallback_category}"
    )


def build_user_content(items_json: str) -> str:
    return (
        "Suggest a description and category for each transaction below.\n\n"
        f"{BEGIN_MARKER}\n{items_json}\n{END_MARKER}"
    )


def build_response_format(
    categories: Sequence[str], fallback_category: str
) -> ResponseFormatTextJSONSchemaConfigParam:
    """Return the strict JSON Schema response_format object.

    Shape: ``{"suggested_transactions": [{"transaction_id", "updated_description",
    "category"}]}`` with ``category`` constrained to the catalog plus fallback.
    """

    allowed = list(dict.fromkeys([*categories, fallback_category]))
    if not allowed:
        raise ValueError("at least one category is required")

    result: ResponseFormatTextJSONSchemaConfigParam = {
        "type": "json_schema",
        "name": "suggested_transactions",
        "schema": {
            "type": "object",
            "properties": {
                "suggested_transactions": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "transaction_id": {"type": "string"},
                            "updated_description": {"type": "string"},
                            "category": {"type": "string", "enum": allowed},
                        },
                        "required": ["transaction_id", "updated_description", "category"],
                        "additionalProperties": False,
                    },
                }
            },
            "required": ["suggested_transactions"],
            "additionalProperties": False,
        },
        "strict": True,
    }
    return result
