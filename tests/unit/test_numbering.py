"""Unit tests for derived display numbers."""

from datetime import date

from propledger.models.bill import Bill
from propledger.models.lease import Lease, format_lease_no


class TestLeaseNumber:
    """Test lease number rendering."""

    def test_format_pads_to_four_digits(self):
        """Test LSE-{year}-{no:04d}."""
        assert format_lease_no(2025, 1) == "LSE-2025-0001"
        assert format_lease_no(2025, 42) == "LSE-2025-0042"
        assert format_lease_no(2026, 12345) == "LSE-2026-12345"

    def test_full_lease_no_uses_start_year(self):
        """Test the year comes from lease_start_date."""
        lease = Lease(lease_no=3, lease_start_date=date(2024, 12, 31))
        assert lease.full_lease_no == "LSE-2024-0003"


class TestInvoiceNumber:
    """Test invoice number rendering."""

    def test_full_invoice_no_uses_issue_year(self):
        """Test INV-{year}-{no:04d}."""
        bill = Bill(invoice_no=7, issue_date=date(2025, 3, 1))
        assert bill.full_invoice_no == "INV-2025-0007"
