"""Document paths, built-in defaults and the JSON/base64 codec."""

import base64
import copy
import json
import time
from typing import Any

from .errors import ValidationError

PRODUCTS_PATH = "data/products.json"
CATEGORIES_PATH = "data/categories.json"
ORDERS_PATH = "data/orders.json"
CONTACTS_PATH = "data/contacts.json"
WEBSITE_PATH = "data/website.json"
BACKUPS_DIR = "backups"

# Snapshot field -> live document path, in write order
SNAPSHOT_DOCUMENTS = {
    "products": PRODUCTS_PATH,
    "categories": CATEGORIES_PATH,
    "orders": ORDERS_PATH,
    "contacts": CONTACTS_PATH,
    "website": WEBSITE_PATH,
}

REQUIRED_SNAPSHOT_FIELDS = ("products", "categories")

_IMAGE_PARAMS = (
    "?ixlib=rb-4.0.3&ixid=M3wxMjA3fDB8MHxwaG90by1wYWdlfHx8fGVufDB8fHx8fA%3D%3D"
    "&auto=format&fit=crop&w=1000&q=80"
)

DEFAULT_DOCUMENTS: dict[str, Any] = {
    PRODUCTS_PATH: [
        {
            "id": 1,
            "name": "Roti Tawar Premium",
            "categoryId": 1,
            "price": 25000,
            "stock": 50,
            "discount": 0,
            "image": "https://images.unsplash.com/photo-1509440159596-0249088772ff" + _IMAGE_PARAMS,
            "description": "Roti tawar lembut dengan kualitas premium",
        },
        {
            "id": 2,
            "name": "Croissant Butter",
            "categoryId": 1,
            "price": 18000,
            "stock": 30,
            "discount": 10,
            "image": "https://images.unsplash.com/photo-1555507032-abfa424c5b2d" + _IMAGE_PARAMS,
            "description": "Croissant butter yang renyah dan lezat",
        },
        {
            "id": 3,
            "name": "Donat Glaze",
            "categoryId": 2,
            "price": 12000,
            "stock": 25,
            "discount": 0,
            "image": "https://images.unsplash.com/photo-1551024601-bec78aea704b" + _IMAGE_PARAMS,
            "description": "Donat dengan glaze manis",
        },
        {
            "id": 4,
            "name": "Brownies Coklat",
            "categoryId": 2,
            "price": 35000,
            "stock": 20,
            "discount": 15,
            "image": "https://images.unsplash.com/photo-1606313564200-e75d5e30476c" + _IMAGE_PARAMS,
            "description": "Brownies coklat yang lembut dan moist",
        },
        {
            "id": 5,
            "name": "French Baguette",
            "categoryId": 1,
            "price": 22000,
            "stock": 15,
            "discount": 0,
            "image": "https://images.unsplash.com/photo-1586444248902-2f64eddc13df" + _IMAGE_PARAMS,
            "description": "Baguette Perancis yang autentik",
        },
    ],
    CATEGORIES_PATH: [
        {"id": 1, "name": "Roti", "description": "Berbagai macam roti segar"},
        {"id": 2, "name": "Kue", "description": "Aneka kue manis dan lezat"},
        {"id": 3, "name": "Pastry", "description": "Pastry premium dengan rasa internasional"},
    ],
    ORDERS_PATH: [],
    CONTACTS_PATH: [],
    WEBSITE_PATH: {
        "name": "DJANDES Bakery",
        "email": "info@djandesbakery.com",
        "phone": "+62 21 1234 5678",
        "address": "Jl. Bakery No. 123, Jakarta, Indonesia",
        "description": (
            "DJANDES Bakery telah melayani pelanggan sejak 2010 dengan komitmen "
            "untuk memberikan produk roti dan kue berkualitas tinggi."
        ),
    },
}


def has_default(path: str) -> bool:
    return path in DEFAULT_DOCUMENTS


def default_document(path: str) -> Any:
    """Return a fresh copy of the built-in document for path.

    Raises:
        KeyError: If path has no built-in default.
    """
    return copy.deepcopy(DEFAULT_DOCUMENTS[path])


def encode_document(value: Any) -> str:
    """Serialize value as pretty-printed JSON and base64-encode the UTF-8 bytes."""
    text = json.dumps(value, indent=2, ensure_ascii=False)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_document(content: str, path: str = "document") -> Any:
    """Decode a base64 `content` field (line breaks allowed) into JSON.

    Files over 1 MB come back with empty content and fail here as well.

    Raises:
        ValidationError: If content is not base64-encoded UTF-8 JSON.
    """
    try:
        return json.loads(base64.b64decode(content).decode("utf-8"))
    except ValueError as e:
        # binascii.Error, UnicodeDecodeError and JSONDecodeError
        raise ValidationError(f"{path} is not valid JSON: {e}") from e


def now_ms() -> int:
    return int(time.time() * 1000)


def next_record_id(records: list[dict[str, Any]], clock_ms: int | None = None) -> int:
    """Return a numeric id derived from the clock and unique within records.

    Millisecond timestamps collide when two records are added in the same
    millisecond, so the id is bumped past the largest integer id present.
    """
    candidate = now_ms() if clock_ms is None else clock_ms
    int_ids = [
        r["id"]
        for r in records
        if isinstance(r.get("id"), int) and not isinstance(r.get("id"), bool)
    ]
    if int_ids:
        candidate = max(candidate, max(int_ids) + 1)
    return candidate


def backup_path(clock_ms: int | None = None) -> str:
    stamp = now_ms() if clock_ms is None else clock_ms
    return f"{BACKUPS_DIR}/backup-{stamp}.json"
