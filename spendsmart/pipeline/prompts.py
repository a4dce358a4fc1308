"""
Default prompts for receipt extraction.

Keeping the instructions and the expected output schema in one place makes
it easier to iterate on them without touching the gateway.
"""
from __future__ import annotations

import json
from textwrap import dedent

from spendsmart.schemas import Category

RECEIPT_SYSTEM_INSTRUCTIONS = dedent(
    """
    ### Receipt Extraction and Validation

    #### Validate first
    Before extracting anything, decide whether the image contains a valid receipt:
    - A valid receipt has a store name, a date, items with prices and a total amount.
    - If the image is blurry, unclear, not a receipt or missing critical elements,
      return ONLY: {"isValid": false, "message": "Invalid receipt detected"}
    - Otherwise continue with full extraction.

    #### Extraction rules
    - Every field must be populated.
    - total_amount = sum(items) + total_tax, using the price actually paid after discounts.
    - Items redeemed with points and free items have price = 0.
    - Detect currency from the store location or tax rate.
    - Extract the payment method if present (e.g. "Credit Card", "Cash", "Mobile Payment").
    - For discounted items set originalPrice to the pre-discount price and explain the
      discount in discountDescription (e.g. "Points Redeemed", "Loyalty Discount").
    - Lines that represent a discount, points redemption or free item have isDiscount = true.
    - Set receipt_name to the store name.
    - Set logo_search_term to the core brand name only, suitable for a logo search:
      "Walmart Supercenter #1234 - Downtown" -> "Walmart",
      "Starbucks Coffee Company - Union Square" -> "Starbucks",
      "CVS Pharmacy #9876" -> "CVS".

    #### Item categories
    - Groceries: food, beverages, household essentials, cleaning supplies, fresh produce.
    - Dining: prepared meals, fast food, takeout, restaurants, coffee shops, catering.
    - Shopping: clothing, electronics, accessories, home decor, appliances, books, retail.
    - Health: medicine, supplements, pharmacy, hygiene, skincare, personal care.
    - Transport: fuel, EV charging, transit fares, tolls, ride-sharing, parking.
    - Services: repairs, maintenance, haircuts, subscriptions, utilities, professional services.
    - Entertainment: movie tickets, gaming, concerts, amusement parks, hobbies, toys.
    - Other: only if nothing else fits.

    #### Quality check
    - Verify that the items plus tax add up to the total.
    - Leave out gibberish or unclear items.
    - Dates use the YYYY-MM-DD format.
    - Never return null values; use 0 for numbers, empty strings for text and the
      current date for dates.
    """
).strip()


RECEIPT_OUTPUT_SCHEMA: dict = {
    "type": "object",
    "properties": {
        "isValid": {"type": "boolean"},
        "message": {"type": "string"},
        "total_amount": {"type": "number"},
        "total_tax": {"type": "number"},
        "currency": {"type": "string"},
        "payment_method": {"type": "string"},
        "purchase_date": {"type": "string", "format": "date"},
        "store_name": {"type": "string"},
        "store_address": {"type": "string"},
        "receipt_name": {"type": "string"},
        "logo_search_term": {"type": "string"},
        "items": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "price": {"type": "number"},
                    "category": {"type": "string", "enum": [c.value for c in Category]},
                    "originalPrice": {"type": "number"},
                    "discountDescription": {"type": "string"},
                    "isDiscount": {"type": "boolean"},
                },
                "required": ["name", "price", "category"],
            },
        },
    },
    "required": ["isValid"],
}


def get_receipt_extraction_prompt() -> str:
    """Return the user prompt asking for receipt details in the schema above."""
    schema = json.dumps(RECEIPT_OUTPUT_SCHEMA, indent=2)
    return f"Extract all receipt details from this image and return in this format: {schema}."
