"""
Async Bank Service

Async facade for hosts running an event loop. Each operation is a single
suspension point: the blocking call runs to completion on a worker thread,
which commits or rolls back its own transaction even if the awaiting task is
cancelled.
"""

import asyncio
from typing import List, Optional

from .currency import Money, AmountLike
from .ledger import AccountStatement, AccountSummary
from .models import Account, Transaction, User
from .operations import TransferReceipt
from .service import BankService


class AsyncBankService:
    """Runs BankService operations via asyncio.to_thread"""

    def __init__(self, service: BankService):
        self._service = service

    @property
    def service(self) -> BankService:
        return self._service

    async def get_user(self, user_id: int) -> Optional[User]:
        return await asyncio.to_thread(self._service.get_user, user_id)

    async def get_accounts(self, user_id: int) -> List[Account]:
        return await asyncio.to_thread(self._service.get_accounts, user_id)

    async def get_account(self, account_id: int) -> Optional[Account]:
        return await asyncio.to_thread(self._service.get_account, account_id)

    async def get_transactions(self, account_id: int) -> List[Transaction]:
        return await asyncio.to_thread(self._service.get_transactions, account_id)

    async def transaction_history(self, account_id: int) -> List[Transaction]:
        """Ordered history, materialised on the worker thread"""
        return await asyncio.to_thread(
            lambda: list(self._service.transaction_history(account_id))
        )

    async def get_balance(self, account_id: int) -> Optional[Money]:
        return await asyncio.to_thread(self._service.get_balance, account_id)

    async def get_statement(self, account_id: int) -> Optional[AccountStatement]:
        return await asyncio.to_thread(self._service.get_statement, account_id)

    async def get_account_summaries(self, user_id: int) -> List[AccountSummary]:
        return await asyncio.to_thread(self._service.get_account_summaries, user_id)

    async def transfer(self, from_account_id: int, to_account_id: int, amount: AmountLike) -> TransferReceipt:
        return await asyncio.to_thread(
            self._service.transfer, from_account_id, to_account_id, amount
        )

    async def pay_bill(self, from_account_id: int, payee: str, amount: AmountLike) -> Transaction:
        return await asyncio.to_thread(
            self._service.pay_bill, from_account_id, payee, amount
        )

    async def close(self) -> None:
        await asyncio.to_thread(self._service.close)
