"""
Product Repository - PostgreSQL storage for audit subjects
"""
import logging
from typing import Optional
import asyncpg

from truth_audit.models.domain import Product

logger = logging.getLogger(__name__)


class ProductRepository:

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def get_by_id(self, product_id: str) -> Optional[Product]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("""
                SELECT id, brand, model_name, category, technical_specs, weight_lbs, msrp_usd
                FROM audit.products
                WHERE id = $1
            """, product_id)

        return Product.from_row(row) if row else None
