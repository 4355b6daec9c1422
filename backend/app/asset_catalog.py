"""Asset catalog loaded from assets.yaml.

Falls back to a built-in list when no file exists. Which assets are free
comes from ``Settings.free_symbols``; every other asset requires Premium.
"""

import logging
from decimal import Decimal
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, model_validator

logger = logging.getLogger(__name__)


class Asset(BaseModel):
    """A tradable symbol of the synthetic feed."""

    symbol: str
    name: str
    base_price: Decimal
    volatility: float


class AssetCatalog(BaseModel):
    """Top-level assets.yaml document."""

    assets: list[Asset] = []

    @model_validator(mode="after")
    def _validate(self):
        symbols = [a.symbol for a in self.assets]
        duplicates = {s for s in symbols if symbols.count(s) > 1}
        if duplicates:
            raise ValueError(f"duplicate symbols in asset catalog: {sorted(duplicates)}")
        return self

    def get(self, symbol: str) -> Asset | None:
        for asset in self.assets:
            if asset.symbol == symbol:
                return asset
        return None

    @property
    def symbols(self) -> list[str]:
        return [a.symbol for a in self.assets]


DEFAULT_ASSETS = [
    Asset(symbol="BTC/USD", name="Bitcoin", base_price=Decimal("65000"), volatility=150),
    Asset(symbol="ETH/USD", name="Ethereum", base_price=Decimal("3500"), volatility=20),
    Asset(symbol="EUR/USD", name="Euro/USD", base_price=Decimal("1.08"), volatility=0.002),
    Asset(symbol="GBP/USD", name="Pound/USD", base_price=Decimal("1.27"), volatility=0.002),
    Asset(symbol="USD/JPY", name="USD/Yen", base_price=Decimal("151.0"), volatility=0.2),
    Asset(symbol="XAU/USD", name="Gold", base_price=Decimal("2300"), volatility=5),
    Asset(symbol="APPLE", name="Apple Inc.", base_price=Decimal("220.0"), volatility=1.2),
    Asset(symbol="USD/BRL", name="USD/Real", base_price=Decimal("5.15"), volatility=0.02),
]


_DEFAULT_PATH = Path(__file__).parent.parent / "assets.yaml"


def load_asset_catalog(path: Path | None = None) -> AssetCatalog:
    """Load the asset catalog from YAML, or the built-in list if absent."""
    catalog_path = path or _DEFAULT_PATH

    load_dotenv(catalog_path.parent / ".env", override=False)

    if not catalog_path.exists():
        logger.info("No assets.yaml found at %s, using built-in catalog", catalog_path)
        return AssetCatalog(assets=list(DEFAULT_ASSETS))

    with open(catalog_path) as f:
        raw = yaml.safe_load(f) or {}

    catalog = AssetCatalog(**raw)
    logger.info("Loaded asset catalog: %d assets", len(catalog.assets))
    return catalog
