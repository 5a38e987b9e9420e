from autoreply.domain.entities.catalog_item import CatalogItem

# Served when no catalog source is configured or readable.
SAMPLE_CATALOG: list[CatalogItem] = [
    CatalogItem(id="ps5", name="PlayStation 5 Slim", price_number=999999, currency="ARS", in_stock=True, category="consolas"),
    CatalogItem(id="xbox", name="Xbox Series X", price_number=999999, currency="ARS", in_stock=True, category="consolas"),
    CatalogItem(
        id="headset",
        name="Auriculares Gamer HyperX Cloud Stinger",
        price_number=99999,
        currency="ARS",
        in_stock=True,
        category="auriculares",
    ),
    CatalogItem(id="monitor", name='Monitor 24" 144Hz', price_number=249999, currency="ARS", in_stock=True, category="monitores"),
]
