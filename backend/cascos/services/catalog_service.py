# Overview: Item classifier; maps a (category, brand/type label) pair to a stock SKU group.

from __future__ import annotations

from typing import Optional

"""
Classifier rules:
- classify() is total: it never raises.
- Several brands share one bucket (Brahma/Skol/Bohemia/Original are all
  AMBEV 600ml bottles), so stock is kept per returnable shell, not per brand.
- Unknown labels return None and callers skip the stock touch. Loans with
  an unmapped brand are still recorded; they just don't move stock.
"""

BOTTLE = "bottle"
CRATE = "crate"

# The UI and older clients speak Portuguese
_CATEGORY_ALIASES = {
    "bottle": BOTTLE,
    "casco": BOTTLE,
    "crate": CRATE,
    "caixa": CRATE,
}

# Ordered: this is also the display order of GET /api/stock
STOCK_CATALOG: tuple[tuple[str, str], ...] = (
    ("vasilhame_ambev", "Vasilhame AMBEV (Brahma/Skol/Original/Bohemia)"),
    ("vasilhame_brasilkirin", "Vasilhame BRASIL KIRIN (Devassa/Amstel)"),
    ("vasilhame_petropolis", "Vasilhame PETRÓPOLIS (Itaipava)"),
    ("vasilhame_heineken", "Vasilhame Heineken 600ml"),
    ("vasilhame_stella", "Vasilhame Stella 600ml"),
    ("vasilhame_cocacola", "Vasilhame Coca Cola 1L"),
    ("caixa_ambev_azul", "Caixa Ambev Azul"),
    ("caixa_brasilkirin_amarela", "Caixa Brasil Kirin Amarela"),
    ("caixa_itaipava_vermelha", "Caixa Itaipava Vermelha"),
    ("caixa_cocacola_ls", "Caixa Coca Cola LS 1L"),
    ("caixa_ambev_1l", "Caixa Ambev 1L"),
    ("caixa_heineken_600ml", "Caixa Heineken 600ml"),
)

_LABEL_GROUPS: dict[str, dict[str, tuple[str, ...]]] = {
    BOTTLE: {
        "vasilhame_ambev": ("Brahma", "Skol", "Bohemia", "Original"),
        "vasilhame_brasilkirin": ("Devassa", "Amstel"),
        "vasilhame_petropolis": ("Itaipava",),
        "vasilhame_heineken": ("Heineken",),
        "vasilhame_stella": ("Stella",),
        "vasilhame_cocacola": ("Coca Cola",),
    },
    CRATE: {
        "caixa_ambev_azul": ("Ambev Azul",),
        "caixa_brasilkirin_amarela": ("Brasil Kirin Amarela",),
        "caixa_itaipava_vermelha": ("Itaipava Vermelha",),
        "caixa_cocacola_ls": ("Coca Cola LS 1L",),
        "caixa_ambev_1l": ("Ambev 1L Caixa",),
        "caixa_heineken_600ml": ("Heineken 600ml",),
    },
}

_LOOKUP: dict[tuple[str, str], str] = {
    (category, label): item_id
    for category, groups in _LABEL_GROUPS.items()
    for item_id, labels in groups.items()
    for label in labels
}


def normalize_category(category: Optional[str]) -> Optional[str]:
    if category is None:
        return None
    return _CATEGORY_ALIASES.get(str(category).strip().lower())


def classify(category: Optional[str], label: Optional[str]) -> Optional[str]:
    """Stock item id for a label, or None ("do not touch stock")."""
    cat = normalize_category(category)
    if cat is None or label is None:
        return None
    return _LOOKUP.get((cat, str(label).strip()))


def known_labels(category: str) -> list[str]:
    cat = normalize_category(category)
    if cat is None:
        return []
    return [label for labels in _LABEL_GROUPS[cat].values() for label in labels]


def stock_item_ids() -> list[str]:
    return [item_id for item_id, _ in STOCK_CATALOG]


def catalog_summary() -> dict:
    """Labels the front end may offer, grouped by category and stock bucket."""
    names = dict(STOCK_CATALOG)
    return {
        category: [
            {"item_id": item_id, "display_name": names[item_id], "labels": list(labels)}
            for item_id, labels in groups.items()
        ]
        for category, groups in _LABEL_GROUPS.items()
    }
