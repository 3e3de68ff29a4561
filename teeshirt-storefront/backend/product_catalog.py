from typing import Any, Dict, List

AVAILABLE_COLORS = [
    {"name": "White", "hex": "#FFFFFF", "border": True},
    {"name": "Black", "hex": "#000000"},
    {"name": "Navy", "hex": "#1E3A8A"},
    {"name": "Gray", "hex": "#6B7280"},
    {"name": "Red", "hex": "#DC2626"},
    {"name": "Orange", "hex": "#F97316"},
    {"name": "Yellow", "hex": "#FCD34D"},
    {"name": "Green", "hex": "#10B981"},
    {"name": "Blue", "hex": "#3B82F6"},
    {"name": "Pink", "hex": "#EC4899"},
]

AVAILABLE_SIZES = ["XS", "S", "M", "L", "XL", "2XL"]

ALL_CATEGORIES = "All"
CATEGORIES = [ALL_CATEGORIES, "Men's", "Women's", "Unisex"]

COLOR_NAMES = [c["name"] for c in AVAILABLE_COLORS]


def filter_by_category(products: List[Dict[str, Any]], category: str) -> List[Dict[str, Any]]:
    if not category or category == ALL_CATEGORIES:
        return list(products)
    return [p for p in products if p.get("category") == category]


def listing_title(category: str) -> str:
    return "All Products" if not category or category == ALL_CATEGORIES else category


def showing_label(count: int) -> str:
    return f"Showing {count} product{'' if count == 1 else 's'}"
