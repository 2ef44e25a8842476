import sys
from datetime import date
from pathlib import Path

import pytest

# Ensure project root is on sys.path so `import transfer_engine` works when running pytest from root.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from transfer_engine.core.config import get_settings  # noqa: E402
from transfer_engine.normalization.models import TransactionRecord  # noqa: E402


@pytest.fixture(autouse=True)
def clear_settings_cache():
    """Settings are cached per process; tests that patch env need a fresh copy."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_record():
    """Factory for transaction records with sensible defaults."""

    def _make(
        id: str,
        amount_minor: int,
        day: date | str = "2024-03-01",
        account_id: str = "A",
        description: str = "",
        **kwargs,
    ) -> TransactionRecord:
        return TransactionRecord(
            id=id,
            account_id=account_id,
            bank_id=kwargs.pop("bank_id", "cba"),
            date=day,
            amount_minor=amount_minor,
            description=description,
            **kwargs,
        )

    return _make


@pytest.fixture
def transfer_pair(make_record):
    """A -$50.00 / +$50.00 transfer between accounts A and B, one day apart."""
    return [
        make_record("t-out", -5000, "2024-03-01", "A", "Transfer to savings", source_id="f1"),
        make_record("t-in", 5000, "2024-03-02", "B", "Transfer from everyday", source_id="f2"),
    ]
