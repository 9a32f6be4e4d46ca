from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence

try:
    import psycopg
except ImportError:  # pragma: no cover
    psycopg = None

from pos_admin.domain.models import LineItem, PaymentMethodInfo, PersistedPayment, SaleSubmission


@dataclass(frozen=True)
class ProductRecord:
    id: int
    name: str
    current_price_cents: int
    is_active: bool = True


@dataclass(frozen=True)
class SaleRecord:
    id: int
    description: Optional[str]
    total_price_cents: int
    created_at: str
    items: List[LineItem] = field(default_factory=list)
    payments: List[PersistedPayment] = field(default_factory=list)


class PosRepository:
    def __init__(self, database_url: str):
        self.database_url = database_url.strip()

    @property
    def enabled(self) -> bool:
        return bool(self.database_url)

    def _connect(self):
        if not self.enabled:
            raise RuntimeError("DATABASE_URL not configured")
        if psycopg is None:
            raise RuntimeError("psycopg is not installed")
        return psycopg.connect(self.database_url)

    # -- payment method catalog ------------------------------------------

    def list_payment_methods(self, *, active_only: bool = True) -> list[PaymentMethodInfo]:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, name, discount, is_active
                FROM payment_methods
                WHERE (%s = false OR is_active)
                ORDER BY name ASC, id ASC
                """,
                (active_only,),
            )
            return [_payment_method(row) for row in cur.fetchall()]

    def get_payment_method(self, method_id: int) -> Optional[PaymentMethodInfo]:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, name, discount, is_active
                FROM payment_methods
                WHERE id = %s
                """,
                (method_id,),
            )
            row = cur.fetchone()
            return _payment_method(row) if row else None

    # -- products ----------------------------------------------------------

    def get_products_by_ids(self, *, product_ids: Sequence[int]) -> dict[int, ProductRecord]:
        if not product_ids:
            return {}

        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, name, current_price_cents, is_active
                FROM products
                WHERE id = ANY(%s::bigint[])
                """,
                (list(product_ids),),
            )
            return {
                int(row[0]): ProductRecord(
                    id=int(row[0]), name=row[1], current_price_cents=int(row[2]), is_active=bool(row[3])
                )
                for row in cur.fetchall()
            }

    # -- sales ---------------------------------------------------------------

    def create_sale(self, *, submission: SaleSubmission) -> int:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO sales (description, total_price_cents)
                VALUES (%s, %s)
                RETURNING id
                """,
                (submission.description, submission.total_price_cents),
            )
            sale_id = int(cur.fetchone()[0])
            _insert_lines(cur, sale_id, submission)
            conn.commit()
            return sale_id

    def update_sale(self, *, sale_id: int, submission: SaleSubmission) -> bool:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                UPDATE sales
                SET description = %s, total_price_cents = %s
                WHERE id = %s
                """,
                (submission.description, submission.total_price_cents, sale_id),
            )
            if cur.rowcount == 0:
                conn.rollback()
                return False

            cur.execute("DELETE FROM sale_items WHERE sale_id = %s", (sale_id,))
            cur.execute("DELETE FROM sale_payment_methods WHERE sale_id = %s", (sale_id,))
            _insert_lines(cur, sale_id, submission)
            conn.commit()
            return True

    def get_sale(self, *, sale_id: int) -> Optional[SaleRecord]:
        with self._connect() as conn, conn.cursor() as cur:
            cur.execute(
                """
                SELECT id, description, total_price_cents, created_at
                FROM sales
                WHERE id = %s
                """,
                (sale_id,),
            )
            head = cur.fetchone()
            if head is None:
                return None

            cur.execute(
                """
                SELECT product_id, quantity, unit_price_cents
                FROM sale_items
                WHERE sale_id = %s
                ORDER BY id ASC
                """,
                (sale_id,),
            )
            items = [
                LineItem(product_id=int(row[0]), quantity=int(row[1]), unit_price_cents=int(row[2]))
                for row in cur.fetchall()
            ]

            cur.execute(
                """
                SELECT spm.payment_method_id, spm.amount_cents, spm.discount_percent, pm.name
                FROM sale_payment_methods spm
                JOIN payment_methods pm ON pm.id = spm.payment_method_id
                WHERE spm.sale_id = %s
                ORDER BY spm.position ASC
                """,
                (sale_id,),
            )
            payments = [
                PersistedPayment(
                    payment_method_id=int(row[0]),
                    amount_cents=int(row[1]),
                    discount_percent=Decimal(row[2]),
                    payment_method_name=row[3],
                )
                for row in cur.fetchall()
            ]

            return SaleRecord(
                id=int(head[0]),
                description=head[1],
                total_price_cents=int(head[2]),
                created_at=head[3].isoformat() if hasattr(head[3], "isoformat") else str(head[3]),
                items=items,
                payments=payments,
            )


def _payment_method(row) -> PaymentMethodInfo:
    return PaymentMethodInfo(
        id=int(row[0]),
        name=row[1],
        discount_percent=Decimal(row[2] if row[2] is not None else 0),
        is_active=bool(row[3]),
    )


def _insert_lines(cur, sale_id: int, submission: SaleSubmission) -> None:
    for item in submission.items:
        cur.execute(
            """
            INSERT INTO sale_items (sale_id, product_id, quantity, unit_price_cents)
            VALUES (%s, %s, %s, %s)
            """,
            (sale_id, item.product_id, item.quantity, item.unit_price_cents),
        )

    for position, payment in enumerate(submission.payments):
        cur.execute(
            """
            INSERT INTO sale_payment_methods
                (sale_id, payment_method_id, amount_cents, discount_percent, position)
            VALUES (%s, %s, %s, %s, %s)
            """,
            (sale_id, payment.method_id, payment.amount_cents, payment.discount_percent, position),
        )
