"""
Pytest configuration and shared fixtures
"""
import sys
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root and tests dir to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from fakes import FakeSupabase  # noqa: E402


@pytest.fixture
def now():
    """Fixed 'now' used by reducers and date helpers"""
    return datetime(2024, 6, 30, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def june_range():
    from intelliservice.reports.base import DateRange
    return DateRange(
        start=datetime(2024, 6, 1, tzinfo=timezone.utc),
        end=datetime(2024, 7, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def fake_db():
    """Empty in-memory Supabase"""
    return FakeSupabase()


@pytest.fixture
def ahs_settings_rows():
    return [
        {"setting_key": "ahs_default_diagnosis_fee", "setting_value": "94.00", "description": "Diagnosis fee"},
        {"setting_key": "ahs_default_labor_rate", "setting_value": "94.00", "description": "Labor rate"},
    ]


@pytest.fixture
def sample_invoices():
    """Invoices dated in June 2024 with mixed statuses"""
    return [
        {"id": "inv-1", "customer_id": "c1", "total": 1000, "status": "paid",
         "invoice_date": "2024-06-05", "due_date": "2024-07-05"},
        {"id": "inv-2", "customer_id": "c1", "total": "500.00", "status": "sent",
         "invoice_date": "2024-06-10", "due_date": "2024-06-20"},
        {"id": "inv-3", "customer_id": "c2", "total": 250, "status": "sent",
         "invoice_date": "2024-06-15", "due_date": "2024-08-01"},
        {"id": "inv-4", "customer_id": "c2", "total": 300, "status": "void",
         "invoice_date": "2024-06-20", "due_date": "2024-05-01"},
    ]
