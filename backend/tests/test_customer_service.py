"""
Customer registry tests.

Verifies:
- Outstanding balance is derived from loan rows, never stored
- Names are unique after upper-casing
- Deleting a customer archives it with its loans and credits pending stock
"""

import json

import pytest
from sqlalchemy.exc import SQLAlchemyError

from cascos.extensions import db
from cascos.models import ArchivedCustomer, Customer, LoanRecord
from cascos.services import archive_service, customer_service, loan_service
from cascos.validation import ConflictError, NotFoundError, PersistenceError, ValidationError


class TestCreateCustomer:

    def test_name_upper_cased_and_balance_zero(self, db_session):
        c = customer_service.create_customer(
            name="  Bar do Zé ", category="bar", address="Rua Y", address_number="22",
        )
        assert c.name == "BAR DO ZÉ"
        assert c.phone is None
        assert customer_service.outstanding_balance(c.id) == 0

    def test_duplicate_name_conflicts_case_insensitively(self, customer):
        with pytest.raises(ConflictError):
            customer_service.create_customer(
                name="joão", category="bar", address="Rua Z", address_number="1",
            )
        assert db.session.query(Customer).count() == 1

    @pytest.mark.parametrize("field", ["name", "category", "address", "address_number"])
    def test_required_fields(self, db_session, field):
        data = {"name": "Mercado", "category": "mercado", "address": "Av. A", "address_number": "5"}
        data[field] = "  "
        with pytest.raises(ValidationError):
            customer_service.create_customer(**data)


class TestBalances:

    def test_balance_tracks_pending_across_loans(self, customer):
        a = loan_service.create_loan(customer_id=customer.id, casco_brand="Brahma", casco_qty=5)
        loan_service.create_loan(customer_id=customer.id, caixa_type="Ambev Azul", caixa_qty=3)
        assert customer_service.outstanding_balance(customer.id) == 8

        loan_service.register_return(a.id, casco_returned_delta=5)
        assert customer_service.outstanding_balance(customer.id) == 3

    def test_list_customers_includes_balance(self, customer):
        other = customer_service.create_customer(
            name="Adega", category="adega", address="Rua B", address_number="2",
        )
        loan_service.create_loan(customer_id=customer.id, casco_brand="Skol", casco_qty=2)

        rows = customer_service.list_customers()
        assert [r["name"] for r in rows] == ["ADEGA", "JOÃO"]
        balances = {r["id"]: r["outstanding_balance"] for r in rows}
        assert balances == {other.id: 0, customer.id: 2}

    def test_detail_includes_loans(self, customer):
        loan_service.create_loan(customer_id=customer.id, casco_brand="Skol", casco_qty=2)
        detail = customer_service.customer_detail(customer.id)
        assert detail["outstanding_balance"] == 2
        assert len(detail["loans"]) == 1


class TestUpdateCustomer:

    def test_partial_update(self, customer):
        customer_service.update_customer(customer.id, {"phone": "1199999", "address": "Rua Nova"})
        db.session.expire_all()
        c = db.session.get(Customer, customer.id)
        assert c.phone == "1199999"
        assert c.address == "Rua Nova"
        assert c.name == "JOÃO"

    def test_rename_to_existing_conflicts(self, customer):
        customer_service.create_customer(name="Adega", category="adega", address="Rua B", address_number="2")
        with pytest.raises(ConflictError):
            customer_service.update_customer(customer.id, {"name": "adega"})

    def test_blanking_required_field_rejected(self, customer):
        with pytest.raises(ValidationError):
            customer_service.update_customer(customer.id, {"address": ""})

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFoundError):
            customer_service.update_customer(777, {"phone": "1"})


class TestDeleteCustomer:

    def test_archives_history_and_credits_stock(self, customer, stock_of):
        first = loan_service.create_loan(
            customer_id=customer.id, casco_brand="Brahma", casco_qty=5, caixa_type="Ambev Azul", caixa_qty=2,
        )
        loan_service.register_return(first.id, casco_returned_delta=1)
        loan_service.create_loan(customer_id=customer.id, casco_brand="Heineken", casco_qty=4)
        customer_id = customer.id

        archived = customer_service.delete_customer(customer_id, "closed business")

        assert stock_of("vasilhame_ambev") == 0
        assert stock_of("caixa_ambev_azul") == 0
        assert stock_of("vasilhame_heineken") == 0

        db.session.expire_all()
        assert db.session.get(Customer, customer_id) is None
        assert db.session.query(LoanRecord).count() == 0

        snapshot = json.loads(archived.original_data)
        assert snapshot["customer"]["nome"] == "JOÃO"
        assert {row["cliente_id"] for row in snapshot["loans"]} == {customer_id}
        assert len(snapshot["loans"]) == 2
        assert archived.justification == "closed business"

    def test_justification_required(self, customer):
        with pytest.raises(ValidationError):
            customer_service.delete_customer(customer.id, "")

    def test_archive_failure_keeps_customer(self, customer, stock_of, monkeypatch):
        loan_service.create_loan(customer_id=customer.id, casco_brand="Brahma", casco_qty=5)

        def _broken(**fields):
            raise SQLAlchemyError("archive table unavailable")

        monkeypatch.setattr(archive_service, "_new_archived_customer", _broken)

        with pytest.raises(PersistenceError):
            customer_service.delete_customer(customer.id, "closed")

        db.session.expire_all()
        assert db.session.get(Customer, customer.id) is not None
        assert db.session.query(LoanRecord).count() == 1
        assert db.session.query(ArchivedCustomer).count() == 0
        assert stock_of("vasilhame_ambev") == -5

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFoundError):
            customer_service.delete_customer(31337, "x")
