"""
Loan ledger service tests.

Verifies:
- Stock moves in step with every loan mutation (create/return/edit/delete)
- returned <= loaned holds after every operation
- Rejected operations leave both the loan row and stock untouched
- Edit audit is best-effort, delete archive is mandatory
"""

import json
from datetime import date

import pytest
from sqlalchemy.exc import SQLAlchemyError

from cascos.extensions import db
from cascos.models import ArchivedLoan, LoanEditAudit, LoanRecord
from cascos.services import archive_service, customer_service, loan_service, stock_service
from cascos.validation import (
    ImmutableRecordError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)


@pytest.fixture
def loan(customer):
    """5 Brahma bottles + 2 Ambev Azul crates."""
    return loan_service.create_loan(
        customer_id=customer.id,
        casco_brand="Brahma",
        casco_qty=5,
        caixa_type="Ambev Azul",
        caixa_qty=2,
    )


def _reload(loan_id):
    db.session.expire_all()
    return db.session.get(LoanRecord, loan_id)


def _all_stock():
    db.session.expire_all()
    return stock_service.list_all()


class TestCreateLoan:

    def test_debits_stock_and_raises_balance(self, customer, loan, stock_of):
        assert stock_of("vasilhame_ambev") == -5
        assert stock_of("caixa_ambev_azul") == -2
        assert customer_service.outstanding_balance(customer.id) == 7

        assert loan.casco_returned_qty == 0
        assert loan.caixa_returned_qty == 0
        assert len(loan.loan_timestamp) == 19

    def test_bottles_only(self, customer, stock_of):
        loan_service.create_loan(customer_id=customer.id, casco_brand="Skol", casco_qty=4)
        assert stock_of("vasilhame_ambev") == -4
        assert customer_service.outstanding_balance(customer.id) == 4

    def test_unknown_brand_records_loan_without_stock(self, customer, stock_of):
        loan = loan_service.create_loan(
            customer_id=customer.id, casco_brand="Budweiser", casco_qty=6,
        )
        assert loan.id is not None
        assert customer_service.outstanding_balance(customer.id) == 6
        assert all(item.quantity == 0 for item in _all_stock())

    def test_loan_timestamp_normalized(self, customer):
        loan = loan_service.create_loan(
            customer_id=customer.id,
            casco_brand="Brahma",
            casco_qty=1,
            loan_timestamp="01/05/2024, 08:30:00",
            due_timestamp="2024-05-15",
        )
        assert loan.loan_timestamp == "2024-05-01 08:30:00"
        assert loan.due_timestamp == "2024-05-15 00:00:00"

    def test_unparseable_loan_timestamp_defaults_to_now(self, customer):
        loan = loan_service.create_loan(
            customer_id=customer.id, casco_brand="Brahma", casco_qty=1, loan_timestamp="yesterday-ish",
        )
        assert len(loan.loan_timestamp) == 19

    def test_unknown_customer_rejected_without_stock_change(self, db_session, stock_of):
        with pytest.raises(ValidationError):
            loan_service.create_loan(customer_id=9999, casco_brand="Brahma", casco_qty=5)
        assert stock_of("vasilhame_ambev") == 0
        assert db_session.query(LoanRecord).count() == 0

    @pytest.mark.parametrize("qty", [-1, "abc", 1.5])
    def test_invalid_quantity_rejected(self, customer, qty):
        with pytest.raises(ValidationError):
            loan_service.create_loan(customer_id=customer.id, casco_brand="Brahma", casco_qty=qty)


class TestRegisterReturn:

    def test_full_bottle_return(self, customer, loan, stock_of):
        loan_service.register_return(loan.id, casco_returned_delta=5, caixa_returned_delta=0)

        assert stock_of("vasilhame_ambev") == 0
        assert stock_of("caixa_ambev_azul") == -2
        assert customer_service.outstanding_balance(customer.id) == 2
        assert _reload(loan.id).casco_returned_qty == 5

    def test_partial_returns_accumulate(self, loan, stock_of):
        loan_service.register_return(loan.id, casco_returned_delta=2)
        loan_service.register_return(loan.id, casco_returned_delta=1, caixa_returned_delta=2)

        row = _reload(loan.id)
        assert row.casco_returned_qty == 3
        assert row.caixa_returned_qty == 2
        assert stock_of("vasilhame_ambev") == -2
        assert stock_of("caixa_ambev_azul") == 0

    def test_return_above_loaned_rejected(self, loan, stock_of):
        loan_service.register_return(loan.id, casco_returned_delta=4)

        with pytest.raises(ValidationError):
            loan_service.register_return(loan.id, casco_returned_delta=2)

        row = _reload(loan.id)
        assert row.casco_returned_qty == 4
        assert stock_of("vasilhame_ambev") == -1

    def test_rejected_crate_axis_blocks_bottle_axis(self, loan, stock_of):
        with pytest.raises(ValidationError):
            loan_service.register_return(loan.id, casco_returned_delta=1, caixa_returned_delta=3)
        assert _reload(loan.id).casco_returned_qty == 0
        assert stock_of("vasilhame_ambev") == -5

    def test_negative_delta_rejected(self, loan):
        with pytest.raises(ValidationError):
            loan_service.register_return(loan.id, casco_returned_delta=-1)

    def test_unknown_loan(self, db_session):
        with pytest.raises(NotFoundError):
            loan_service.register_return(424242, casco_returned_delta=1)

    def test_zero_delta_is_noop(self, loan, stock_of):
        loan_service.register_return(loan.id)
        assert stock_of("vasilhame_ambev") == -5


class TestEditLoan:

    def test_brand_change_moves_stock_between_buckets(self, loan, stock_of):
        result = loan_service.edit_loan(
            loan.id,
            {"casco_brand": "Heineken", "casco_qty": 3},
            justification="correction",
            edited_by="junior",
        )

        assert stock_of("vasilhame_ambev") == 0
        assert stock_of("vasilhame_heineken") == -3
        assert stock_of("caixa_ambev_azul") == -2

        assert result.audit_recorded
        audits = db.session.query(LoanEditAudit).filter_by(loan_record_id=loan.id).all()
        assert len(audits) == 1
        before = json.loads(audits[0].before_snapshot)
        after = json.loads(audits[0].after_snapshot)
        assert before["casco_brand"] == "Brahma"
        assert before["casco_qty"] == 5
        assert after["casco_brand"] == "Heineken"
        assert after["casco_qty"] == 3
        assert after["edited_by"] == "junior"
        assert audits[0].justification == "correction"

    def test_same_label_applies_quantity_difference(self, loan, stock_of):
        loan_service.edit_loan(loan.id, {"caixa_qty": 5}, justification="typo", edited_by="junior")
        assert stock_of("caixa_ambev_azul") == -5

        loan_service.edit_loan(loan.id, {"caixa_qty": 1}, justification="typo", edited_by="junior")
        assert stock_of("caixa_ambev_azul") == -1

    def test_absent_fields_keep_current_values(self, loan):
        loan_service.edit_loan(loan.id, {"salesperson": "Carlos"}, justification="x", edited_by="junior")
        row = _reload(loan.id)
        assert row.salesperson == "Carlos"
        assert row.casco_brand == "Brahma"
        assert row.casco_qty == 5
        assert row.edited_by == "junior"
        assert row.edit_justification == "x"
        assert row.edit_timestamp is not None

    def test_qty_below_returned_rejected(self, loan, stock_of):
        loan_service.register_return(loan.id, casco_returned_delta=4)

        with pytest.raises(ValidationError):
            loan_service.edit_loan(loan.id, {"casco_qty": 3}, justification="x", edited_by="junior")

        row = _reload(loan.id)
        assert row.casco_qty == 5
        assert row.casco_returned_qty == 4
        assert row.edited_by is None
        assert stock_of("vasilhame_ambev") == -1
        assert db.session.query(LoanEditAudit).count() == 0

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"justification": "", "edited_by": "junior"},
            {"justification": "fix", "edited_by": "  "},
            {"justification": None, "edited_by": "junior"},
        ],
    )
    def test_justification_and_editor_required(self, loan, kwargs):
        with pytest.raises(ValidationError):
            loan_service.edit_loan(loan.id, {"casco_qty": 1}, **kwargs)

    def test_non_editable_field_rejected(self, loan):
        with pytest.raises(ValidationError):
            loan_service.edit_loan(loan.id, {"casco_returned_qty": 5}, justification="x", edited_by="y")

    def test_unknown_loan(self, db_session):
        with pytest.raises(NotFoundError):
            loan_service.edit_loan(9999, {"casco_qty": 1}, justification="x", edited_by="y")

    def test_clearing_due_timestamp(self, customer):
        loan = loan_service.create_loan(
            customer_id=customer.id, casco_brand="Brahma", casco_qty=1, due_timestamp="2024-05-15",
        )
        loan_service.edit_loan(loan.id, {"due_timestamp": None}, justification="x", edited_by="y")
        assert _reload(loan.id).due_timestamp is None

    def test_audit_failure_keeps_edit(self, loan, stock_of, monkeypatch):
        def _broken(**fields):
            raise SQLAlchemyError("audit table unavailable")

        monkeypatch.setattr(archive_service, "_new_edit_audit", _broken)

        result = loan_service.edit_loan(loan.id, {"casco_qty": 2}, justification="x", edited_by="junior")

        assert result.audit_recorded is False
        assert _reload(loan.id).casco_qty == 2
        assert stock_of("vasilhame_ambev") == -2
        assert db.session.query(LoanEditAudit).count() == 0

    def test_failed_audit_insert_rolls_back_to_savepoint(self, loan, stock_of, monkeypatch):
        # NOT NULL violation raised by the database on the audit INSERT
        def _missing_editor(**fields):
            return LoanEditAudit(**{**fields, "edited_by": None})

        monkeypatch.setattr(archive_service, "_new_edit_audit", _missing_editor)

        result = loan_service.edit_loan(
            loan.id, {"caixa_type": "Heineken 600ml"}, justification="x", edited_by="junior",
        )

        assert result.audit_recorded is False
        row = _reload(loan.id)
        assert row.caixa_type == "Heineken 600ml"
        assert row.edited_by == "junior"
        assert stock_of("caixa_ambev_azul") == 0
        assert stock_of("caixa_heineken_600ml") == -2
        assert db.session.query(LoanEditAudit).count() == 0

    def test_crate_type_change_moves_stock(self, loan, stock_of):
        loan_service.edit_loan(
            loan.id, {"caixa_type": "Heineken 600ml", "caixa_qty": 3}, justification="x", edited_by="junior",
        )
        assert stock_of("caixa_ambev_azul") == 0
        assert stock_of("caixa_heineken_600ml") == -3
        assert stock_of("vasilhame_ambev") == -5

    def test_brand_change_after_partial_return_credits_full_old_quantity(self, loan, stock_of):
        loan_service.register_return(loan.id, casco_returned_delta=2)
        assert stock_of("vasilhame_ambev") == -3

        loan_service.edit_loan(loan.id, {"casco_brand": "Heineken"}, justification="x", edited_by="junior")

        # The 2 returned bottles were already credited by the return; the
        # label change credits the full old quantity again.
        assert stock_of("vasilhame_ambev") == 2
        assert stock_of("vasilhame_heineken") == -5
        row = _reload(loan.id)
        assert row.casco_returned_qty == 2
        assert row.pending_casco == 3

    def test_edit_to_and_from_unclassified_brand(self, loan, stock_of):
        loan_service.edit_loan(loan.id, {"casco_brand": "Budweiser"}, justification="x", edited_by="junior")
        assert stock_of("vasilhame_ambev") == 0
        assert all(item.quantity == 0 for item in _all_stock() if item.item_id.startswith("vasilhame"))

        loan_service.edit_loan(
            loan.id, {"casco_brand": "Skol", "casco_qty": 4}, justification="x", edited_by="junior",
        )
        assert stock_of("vasilhame_ambev") == -4
        assert _reload(loan.id).casco_brand == "Skol"

    def test_quantity_change_on_unclassified_brand_leaves_stock(self, customer, stock_of):
        loan = loan_service.create_loan(customer_id=customer.id, casco_brand="Budweiser", casco_qty=2)
        loan_service.edit_loan(loan.id, {"casco_qty": 9}, justification="x", edited_by="junior")
        assert _reload(loan.id).casco_qty == 9
        assert all(item.quantity == 0 for item in _all_stock())


class TestDeleteLoan:

    def test_pending_credited_and_archived(self, customer, stock_of):
        loan = loan_service.create_loan(customer_id=customer.id, casco_brand="Brahma", casco_qty=5)
        loan_service.register_return(loan.id, casco_returned_delta=2)
        loan_id = loan.id

        archived = loan_service.delete_loan(loan_id, "damaged")

        assert stock_of("vasilhame_ambev") == 0
        assert _reload(loan_id) is None
        snapshot = json.loads(archived.original_data)
        assert snapshot["id"] == loan_id
        assert snapshot["qtd_casco"] == 5
        assert snapshot["marca_casco"] == "Brahma"
        assert snapshot["qtd_casco_devolvido"] == 2
        assert "pending_casco" not in snapshot
        assert archived.justification == "damaged"
        assert customer_service.outstanding_balance(customer.id) == 0

        with pytest.raises(NotFoundError):
            loan_service.delete_loan(loan_id, "damaged")

    def test_justification_required(self, loan, stock_of):
        with pytest.raises(ValidationError):
            loan_service.delete_loan(loan.id, "   ")
        assert _reload(loan.id) is not None
        assert stock_of("vasilhame_ambev") == -5

    def test_archive_failure_rolls_everything_back(self, loan, stock_of, monkeypatch):
        def _broken(**fields):
            raise SQLAlchemyError("archive table unavailable")

        monkeypatch.setattr(archive_service, "_new_archived_loan", _broken)

        with pytest.raises(PersistenceError):
            loan_service.delete_loan(loan.id, "damaged")

        assert _reload(loan.id) is not None
        assert stock_of("vasilhame_ambev") == -5
        assert stock_of("caixa_ambev_azul") == -2
        assert db.session.query(ArchivedLoan).count() == 0

    def test_edit_audit_survives_loan_delete(self, loan):
        loan_id = loan.id
        loan_service.edit_loan(loan_id, {"casco_qty": 4}, justification="x", edited_by="y")
        loan_service.delete_loan(loan_id, "gone")
        assert len(archive_service.list_loan_edits(loan_id=loan_id)) == 1


class TestConservation:

    def test_stock_plus_pending_is_constant(self, customer, stock_of):
        """For every bucket: stock + pending on its loans stays equal to the starting stock."""
        first = loan_service.create_loan(
            customer_id=customer.id, casco_brand="Skol", casco_qty=10, caixa_type="Ambev Azul", caixa_qty=4,
        )
        second = loan_service.create_loan(customer_id=customer.id, casco_brand="Brahma", casco_qty=3)

        loan_service.register_return(first.id, casco_returned_delta=6, caixa_returned_delta=1)
        loan_service.edit_loan(second.id, {"casco_qty": 7}, justification="recount", edited_by="junior")
        loan_service.register_return(second.id, casco_returned_delta=7)
        loan_service.delete_loan(second.id, "settled")

        pending_bottles = sum(
            l.pending_casco for l in loan_service.list_loans_for_customer(customer.id)
            if l.casco_brand in ("Skol", "Brahma")
        )
        assert stock_of("vasilhame_ambev") + pending_bottles == 0
        assert stock_of("caixa_ambev_azul") == -3
        assert customer_service.outstanding_balance(customer.id) == 7


class TestQueries:

    def test_list_loans_newest_first(self, customer):
        older = loan_service.create_loan(
            customer_id=customer.id, casco_brand="Brahma", casco_qty=1, loan_timestamp="2024-01-01 10:00:00",
        )
        newer = loan_service.create_loan(
            customer_id=customer.id, casco_brand="Brahma", casco_qty=1, loan_timestamp="2024-02-01 10:00:00",
        )
        assert [l.id for l in loan_service.list_loans()] == [newer.id, older.id]
        assert [l.id for l in loan_service.list_loans(limit=1)] == [newer.id]

    def test_list_loans_for_day(self, customer):
        loan_service.create_loan(
            customer_id=customer.id, casco_brand="Brahma", casco_qty=1, loan_timestamp="2024-03-10 23:59:59",
        )
        hit = loan_service.create_loan(
            customer_id=customer.id, casco_brand="Brahma", casco_qty=1, loan_timestamp="2024-03-11 00:00:00",
        )
        rows = loan_service.list_loans_for_day(date(2024, 3, 11))
        assert [r.id for r in rows] == [hit.id]

    def test_overdue_only_with_pending(self, customer):
        overdue = loan_service.create_loan(
            customer_id=customer.id, casco_brand="Brahma", casco_qty=2, due_timestamp="2024-01-05",
        )
        settled = loan_service.create_loan(
            customer_id=customer.id, casco_brand="Brahma", casco_qty=2, due_timestamp="2024-01-01",
        )
        loan_service.register_return(settled.id, casco_returned_delta=2)
        loan_service.create_loan(
            customer_id=customer.id, casco_brand="Brahma", casco_qty=2, due_timestamp="2030-01-01",
        )
        loan_service.create_loan(customer_id=customer.id, casco_brand="Brahma", casco_qty=2)

        rows = loan_service.list_overdue_loans(now="2024-06-01 00:00:00")
        assert [r.id for r in rows] == [overdue.id]


class TestAppendOnly:

    def test_archived_loan_cannot_be_modified(self, loan):
        archived = loan_service.delete_loan(loan.id, "damaged")
        db.session.refresh(archived)
        archived.justification = "rewritten"
        with pytest.raises(ImmutableRecordError):
            db.session.flush()
        db.session.rollback()

    def test_edit_audit_cannot_be_deleted(self, loan):
        result = loan_service.edit_loan(loan.id, {"casco_qty": 4}, justification="x", edited_by="y")
        db.session.refresh(result.audit)
        db.session.delete(result.audit)
        with pytest.raises(ImmutableRecordError):
            db.session.flush()
        db.session.rollback()
