"""
gmpflow.reporting - Shop overview and production cards.
"""

from .overview import ShopOverview, shop_overview
from .cards import StageStep, ProductionCard, build_production_card, build_production_cards

__all__ = [
    "ShopOverview",
    "shop_overview",
    "StageStep",
    "ProductionCard",
    "build_production_card",
    "build_production_cards",
]
