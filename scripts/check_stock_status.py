"""
Check stock status - how many products are in stock vs sold out, and which
ones are running low.

Usage:
    python scripts/check_stock_status.py [threshold]
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from repositories.client import StoreSettings, create_supabase_client
from repositories.product_repository import SupabaseProductRepository
from services.stock_ledger import StockLedger


def check_stock_status(threshold: int = 3):
    """Print stock totals and the products at or below threshold."""

    client = create_supabase_client(StoreSettings.from_env())

    total_response = client.table("products").select("product_id", count="exact").execute()
    total_count = getattr(total_response, "count", 0) or 0

    sold_out_response = (
        client.table("products")
        .select("product_id", count="exact")
        .eq("stock", 0)
        .execute()
    )
    sold_out_count = getattr(sold_out_response, "count", 0) or 0

    print("=" * 50)
    print("STOCK STATUS")
    print("=" * 50)
    print(f"Total products:            {total_count}")
    print(f"In stock:                  {total_count - sold_out_count}")
    print(f"Sold out:                  {sold_out_count}")
    print(f"Percentage sold out:       {(sold_out_count / total_count * 100):.1f}%" if total_count > 0 else "N/A")
    print("=" * 50)

    print(f"\nProducts with stock <= {threshold}:")
    print("-" * 50)

    ledger = StockLedger(SupabaseProductRepository(client))
    for product in ledger.low_stock(threshold):
        label = f"{product.sku} " if product.sku else ""
        print(f"{label}{product.name}: {product.stock} left")

    print("-" * 50)


if __name__ == "__main__":
    check_stock_status(int(sys.argv[1]) if len(sys.argv) > 1 else 3)
