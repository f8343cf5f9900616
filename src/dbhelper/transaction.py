"""
Explicit transactions on top of the auto-commit connection.
"""
import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)

# ids of the connections with an open Transaction, per thread
_local = threading.local()


def _open_transactions() -> set[int]:
    if not hasattr(_local, 'open'):
        _local.open = set()
    return _local.open


class Transaction:
    """Run a block of statements as one transaction.

    Auto-commit is off inside the block. A clean exit commits. The block
    rolls back when it raises or after `set_rollback_only()` (which is what
    `DBHelper.rollback()` calls inside a transaction). Transactions do not
    nest on the same connection within a thread.

        with db.transaction() as tx:
            db.update(account)
            if account.balance < 0:
                tx.set_rollback_only()
    """

    def __init__(self, cn: Any) -> None:
        if id(cn) in _open_transactions():
            raise RuntimeError('Nested transactions are not supported')
        self.connection = cn
        self.rollback_only = False

    def __enter__(self) -> 'Transaction':
        cn = self.connection
        _open_transactions().add(id(cn))
        cn.strategy.disable_autocommit(cn.dbapi_connection)
        cn.transaction = self
        logger.debug(f'Transaction opened on connection {id(cn)}')
        return self

    def __exit__(self, exc_type: type | None, value: Exception | None, traceback: Any | None) -> None:
        cn = self.connection
        raw = cn.dbapi_connection
        try:
            if exc_type is not None:
                logger.warning(f'Rolling back transaction after {exc_type.__name__}')
                raw.rollback()
            elif self.rollback_only:
                logger.warning('Rolling back transaction marked rollback-only')
                raw.rollback()
            else:
                raw.commit()
                logger.debug(f'Transaction committed on connection {id(cn)}')
        finally:
            _open_transactions().discard(id(cn))
            cn.transaction = None
            cn.strategy.enable_autocommit(raw)

    def set_rollback_only(self) -> None:
        """Roll back instead of committing when the block exits."""
        if not self.rollback_only:
            logger.warning(f'Transaction on connection {id(self.connection)} marked rollback-only')
        self.rollback_only = True
