# FILE: services/ledger_store.py
"""
Persistence behind the commit coordinator.

LedgerGateway is the contract the executors write through. Two stores
implement it: InMemoryLedgerStore (default, and what tests use) and
PrismaLedgerStore (PostgreSQL, enabled by DATABASE_URL).
"""

import asyncio
import json
import logging
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Protocol

from models.ledger import (
    CustomerAccount,
    CustomerAccountItem,
    LedgerItem,
    Product,
    ServiceOrder,
    TransactionRecord,
)
from services.utils import deep_serialize

logger = logging.getLogger("ledger_store")

ZERO = Decimal("0")


class LedgerGateway(Protocol):
    async def save_transaction(self, tx: TransactionRecord) -> TransactionRecord:
        ...

    async def save_debt(self, customer_name: str, amount: Decimal, description: str) -> CustomerAccount:
        ...

    async def save_product(self, product: Product) -> Product:
        ...

    async def save_service_order(self, order: ServiceOrder) -> ServiceOrder:
        ...

    async def navigate(self, target_page: str) -> str:
        ...

    async def list_transactions(self, day: Optional[date] = None) -> List[TransactionRecord]:
        ...


def _day_bounds(day: date):
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def _payment_item(tx: TransactionRecord) -> CustomerAccountItem:
    return CustomerAccountItem(description=f"Pagamento: {tx.description}", amount=-tx.amount)


# ---------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------
class InMemoryLedgerStore:
    """
    Process-local ledger. Customer accounts are matched by name,
    case-insensitively, the way shop owners refer to their customers.
    """

    def __init__(self):
        self.transactions: List[TransactionRecord] = []
        self.accounts: Dict[str, CustomerAccount] = {}
        self.products: List[Product] = []
        self.service_orders: List[ServiceOrder] = []
        self.navigations: List[str] = []
        self._lock = asyncio.Lock()

    def find_account(self, name: str) -> Optional[CustomerAccount]:
        return self.accounts.get(name.strip().lower())

    async def save_transaction(self, tx: TransactionRecord) -> TransactionRecord:
        async with self._lock:
            self.transactions.insert(0, tx)
            if tx.is_debt_payment and tx.entity:
                account = self.find_account(tx.entity)
                if account is not None:
                    account.balance = max(ZERO, account.balance - tx.amount)
                    account.items.append(_payment_item(tx))
                    account.last_update = datetime.now()
                else:
                    logger.warning(f"[LEDGER] debt payment for unknown customer '{tx.entity}'")
        logger.info(f"[LEDGER] transaction {tx.id} amount={tx.amount} type={tx.type.value}")
        return tx

    async def save_debt(self, customer_name: str, amount: Decimal, description: str) -> CustomerAccount:
        async with self._lock:
            item = CustomerAccountItem(description=description, amount=amount)
            account = self.find_account(customer_name)
            if account is None:
                account = CustomerAccount(name=customer_name, balance=amount, items=[item])
                self.accounts[customer_name.strip().lower()] = account
            else:
                account.balance += amount
                account.items.append(item)
                account.last_update = datetime.now()
        logger.info(f"[LEDGER] debt {amount} for '{customer_name}' (balance {account.balance})")
        return account

    async def save_product(self, product: Product) -> Product:
        self.products.append(product)
        return product

    async def save_service_order(self, order: ServiceOrder) -> ServiceOrder:
        self.service_orders.append(order)
        return order

    async def navigate(self, target_page: str) -> str:
        self.navigations.append(target_page)
        return target_page

    async def list_transactions(self, day: Optional[date] = None) -> List[TransactionRecord]:
        if day is None:
            return list(self.transactions)
        start, end = _day_bounds(day)
        return [t for t in self.transactions if start <= t.date < end]


# ---------------------------------------------------------------------
# Prisma store
# ---------------------------------------------------------------------
class PrismaLedgerStore:
    """
    PostgreSQL through prisma-client-py. See schema.prisma for the models;
    line items are stored as a JSON string column.
    """

    def __init__(self, db):
        self.db = db

    async def _find_account(self, name: str):
        return await self.db.customeraccount.find_first(
            where={"name": {"equals": name.strip(), "mode": "insensitive"}}
        )

    async def save_transaction(self, tx: TransactionRecord) -> TransactionRecord:
        await self.db.ledgertransaction.create(
            data={
                "id": tx.id,
                "description": tx.description,
                "amount": tx.amount,
                "type": tx.type.value,
                "category": tx.category,
                "paymentMethod": tx.payment_method.value,
                "date": tx.date,
                "status": tx.status.value,
                "entity": tx.entity,
                "itemsJson": json.dumps(deep_serialize(tx.items)),
                "isDebtPayment": tx.is_debt_payment,
            }
        )
        if tx.is_debt_payment and tx.entity:
            account = await self._find_account(tx.entity)
            if account is not None:
                new_balance = max(ZERO, Decimal(str(account.balance)) - tx.amount)
                item = _payment_item(tx)
                await self.db.customeraccount.update(
                    where={"id": account.id},
                    data={
                        "balance": new_balance,
                        "items": {"create": [{"description": item.description, "amount": item.amount}]},
                    },
                )
        logger.info(f"[LEDGER] transaction {tx.id} persisted")
        return tx

    async def save_debt(self, customer_name: str, amount: Decimal, description: str) -> CustomerAccount:
        item = {"description": description, "amount": amount}
        account = await self._find_account(customer_name)
        if account is None:
            row = await self.db.customeraccount.create(
                data={"name": customer_name, "balance": amount, "items": {"create": [item]}},
                include={"items": True},
            )
        else:
            row = await self.db.customeraccount.update(
                where={"id": account.id},
                data={"balance": {"increment": amount}, "items": {"create": [item]}},
                include={"items": True},
            )
        return CustomerAccount(
            id=row.id,
            name=row.name,
            balance=Decimal(str(row.balance)),
            items=[
                CustomerAccountItem(id=i.id, date=i.date, description=i.description, amount=Decimal(str(i.amount)))
                for i in (row.items or [])
            ],
        )

    async def save_product(self, product: Product) -> Product:
        await self.db.product.create(
            data={
                "id": product.id,
                "name": product.name,
                "costPrice": product.cost_price,
                "salePrice": product.sale_price,
                "stock": product.stock,
                "minStock": product.min_stock,
            }
        )
        return product

    async def save_service_order(self, order: ServiceOrder) -> ServiceOrder:
        await self.db.serviceorder.create(
            data={
                "id": order.id,
                "customerName": order.customer_name,
                "device": order.device,
                "description": order.description,
                "status": order.status,
                "openDate": order.open_date,
            }
        )
        return order

    async def navigate(self, target_page: str) -> str:
        # Navigation is handled by the client; nothing to persist
        return target_page

    async def list_transactions(self, day: Optional[date] = None) -> List[TransactionRecord]:
        where = {}
        if day is not None:
            start, end = _day_bounds(day)
            where = {"date": {"gte": start, "lt": end}}
        rows = await self.db.ledgertransaction.find_many(where=where, order={"date": "desc"})
        return [
            TransactionRecord(
                id=r.id,
                description=r.description,
                amount=Decimal(str(r.amount)),
                type=r.type,
                category=r.category,
                payment_method=r.paymentMethod,
                date=r.date,
                status=r.status,
                entity=r.entity,
                items=[LedgerItem(**i) for i in json.loads(r.itemsJson or "[]")],
                is_debt_payment=r.isDebtPayment,
            )
            for r in rows
        ]


async def connect_prisma_store(database_url: str) -> PrismaLedgerStore:
    # Deferred: the generated client only exists after `prisma generate`
    from prisma import Prisma

    db = Prisma(datasource={"url": database_url})
    await db.connect()
    logger.info("✅ Prisma DB connected")
    return PrismaLedgerStore(db)
