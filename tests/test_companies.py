"""
Tests for bookkeeping.companies — company records.
"""

import pytest

from bookkeeping import companies
from bookkeeping.database import init_db
from bookkeeping.exceptions import CompanyNotFoundError, DuplicateCompanyError, ValidationError


@pytest.fixture
def tmp_db(tmp_path):
    db_path = str(tmp_path / "test.db")
    init_db(db_path)
    return db_path


class TestSlugify:
    def test_slugify(self):
        assert companies.slugify("Murphy Web Services") == "murphy_web_services"
        assert companies.slugify("  A&B Trading, Inc. ") == "a_b_trading_inc"


class TestCreateCompany:
    def test_defaults(self, tmp_db):
        c = companies.create_company("Murphy Web Services", db_path=tmp_db)
        assert c.slug == "murphy_web_services"
        assert c.legal_name == "Murphy Web Services"
        assert c.currency == "PHP"
        assert c.fiscal_year_end == 12
        assert c.status == "active"

    def test_address_roundtrip(self, tmp_db):
        companies.create_company(
            "Cebu Bakery",
            address={"line1": "12 Osmeña Blvd", "city": "Cebu City"},
            tax_id="123-456-789-000",
            db_path=tmp_db,
        )
        c = companies.get_company("cebu_bakery", tmp_db)
        assert c.address.city == "Cebu City"
        assert c.address.country == "Philippines"
        assert c.tax_id == "123-456-789-000"

    def test_duplicate_name(self, tmp_db):
        companies.create_company("Murphy Web Services", db_path=tmp_db)
        with pytest.raises(DuplicateCompanyError) as exc:
            companies.create_company("Murphy Web Services", slug="murphy2", db_path=tmp_db)
        assert exc.value.details == {"name": "Murphy Web Services"}

    def test_duplicate_slug(self, tmp_db):
        companies.create_company("Murphy Web Services", db_path=tmp_db)
        with pytest.raises(DuplicateCompanyError):
            companies.create_company("Murphy Web Services Inc", slug="murphy_web_services", db_path=tmp_db)

    @pytest.mark.parametrize("kwargs", [
        {"name": ""},
        {"name": "Acme", "slug": "Not A Slug"},
        {"name": "Acme", "fiscal_year_end": 13},
    ])
    def test_invalid(self, tmp_db, kwargs):
        with pytest.raises(ValidationError):
            companies.create_company(db_path=tmp_db, **kwargs)


class TestLookup:
    def test_get_by_id_or_slug(self, tmp_db):
        c = companies.create_company("Acme", db_path=tmp_db)
        assert companies.get_company(c.id, tmp_db).slug == "acme"
        assert companies.get_company("acme", tmp_db).id == c.id

    def test_missing(self, tmp_db):
        assert companies.find_company_by_slug("nope", tmp_db) is None
        with pytest.raises(CompanyNotFoundError):
            companies.get_company("nope", tmp_db)

    def test_list_and_status(self, tmp_db):
        companies.create_company("Beta", db_path=tmp_db)
        companies.create_company("Alpha", db_path=tmp_db)
        companies.set_company_status("beta", "inactive", db_path=tmp_db)

        assert [c.name for c in companies.list_companies(db_path=tmp_db)] == ["Alpha", "Beta"]
        assert [c.name for c in companies.list_companies(status="active", db_path=tmp_db)] == ["Alpha"]

    def test_invalid_status(self, tmp_db):
        companies.create_company("Acme", db_path=tmp_db)
        with pytest.raises(ValidationError):
            companies.set_company_status("acme", "archived", db_path=tmp_db)
