"""
Tests for SequenceService and InvoiceNumberAllocator.

Covers:
- Contiguous, gap-free ranges per tenant, key and year
- Separate counters per invoice type and tenant
- Rolled-back units of work return their numbers
- Number format and allocation errors
"""

from datetime import date
from uuid import uuid4

import pytest

from windpark_kernel.db.engine import atomic
from windpark_kernel.domain.values import InvoiceType
from windpark_kernel.exceptions import InvalidAllocationRequestError
from windpark_kernel.services.number_allocator import (
    InvoiceNumberAllocator,
    format_document_number,
)
from windpark_kernel.services.sequence_service import SequenceService


class TestSequenceService:
    def test_first_reservation_starts_at_one(self, session, tenant_id):
        seq = SequenceService(session)
        rng = seq.reserve(tenant_id, "INVOICE", 2025, 3)
        assert (rng.first, rng.last) == (1, 3)
        assert rng.values == (1, 2, 3)
        assert len(rng) == 3

    def test_ranges_are_contiguous(self, session, tenant_id):
        seq = SequenceService(session)
        seq.reserve(tenant_id, "INVOICE", 2025, 3)
        rng = seq.reserve(tenant_id, "INVOICE", 2025, 2)
        assert rng.values == (4, 5)
        assert seq.current_value(tenant_id, "INVOICE", 2025) == 5

    def test_scopes_are_independent(self, session, tenant_id):
        seq = SequenceService(session)
        seq.reserve(tenant_id, "INVOICE", 2025, 5)
        assert seq.reserve(tenant_id, "INVOICE", 2026).first == 1
        assert seq.reserve(tenant_id, "CREDIT_NOTE", 2025).first == 1
        assert seq.reserve(uuid4(), "INVOICE", 2025).first == 1

    def test_unused_scope_has_no_value(self, session, tenant_id):
        assert SequenceService(session).current_value(tenant_id, "INVOICE", 2025) is None

    @pytest.mark.parametrize("count", [0, -1])
    def test_count_must_be_positive(self, session, tenant_id, count):
        with pytest.raises(InvalidAllocationRequestError):
            SequenceService(session).reserve(tenant_id, "INVOICE", 2025, count)


class TestInvoiceNumberAllocator:
    def test_numbers_are_formatted_per_year(self, session, clock, tenant_id):
        allocator = InvoiceNumberAllocator(session, clock)
        allocated = allocator.allocate(tenant_id, InvoiceType.INVOICE, count=3)
        assert allocated.numbers == ("RE-2025-00001", "RE-2025-00002", "RE-2025-00003")
        assert allocated.first == "RE-2025-00001"
        assert allocated.last == "RE-2025-00003"
        assert len(allocated) == 3

    def test_credit_notes_have_own_range(self, session, clock, tenant_id):
        allocator = InvoiceNumberAllocator(session, clock)
        allocator.allocate(tenant_id, InvoiceType.INVOICE, count=2)
        assert allocator.allocate(tenant_id, InvoiceType.CREDIT_NOTE).first == "GS-2025-00001"

    def test_as_of_selects_year(self, session, clock, tenant_id):
        allocator = InvoiceNumberAllocator(session, clock)
        allocated = allocator.allocate(tenant_id, InvoiceType.INVOICE, as_of=date(2024, 12, 31))
        assert allocated.first == "RE-2024-00001"

    def test_rolled_back_unit_burns_no_number(self, session, clock, tenant_id):
        allocator = InvoiceNumberAllocator(session, clock)
        allocator.allocate(tenant_id, InvoiceType.INVOICE)

        with pytest.raises(RuntimeError):
            with atomic(session):
                allocator.allocate(tenant_id, InvoiceType.INVOICE)
                raise RuntimeError("invoice insert failed")

        assert allocator.allocate(tenant_id, InvoiceType.INVOICE).first == "RE-2025-00002"

    def test_custom_prefixes_and_digits(self, session, clock, tenant_id):
        allocator = InvoiceNumberAllocator(
            session,
            clock,
            prefixes={InvoiceType.INVOICE: "RG", InvoiceType.CREDIT_NOTE: "GU"},
            digits=4,
        )
        assert allocator.allocate(tenant_id, InvoiceType.CREDIT_NOTE).first == "GU-2025-0001"

    def test_unknown_type_rejected(self, session, clock):
        allocator = InvoiceNumberAllocator(
            session, clock, prefixes={InvoiceType.INVOICE: "RE"}
        )
        with pytest.raises(InvalidAllocationRequestError):
            allocator.prefix_for(InvoiceType.CREDIT_NOTE)

    def test_format_document_number(self):
        assert format_document_number("AS", 2025, 7, 3) == "AS-2025-007"
