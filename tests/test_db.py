import pytest
from sqlalchemy import select

from taxcore.db.base import Base
from taxcore.db.session import init_db, session_scope
from taxcore.models.models import TaxEntity
from taxcore.models.tax_models import EntityType


def test_init_db_creates_every_table(db_session):
    Base.metadata.drop_all(bind=db_session.get_bind())
    init_db()

    with session_scope() as session:
        session.add(TaxEntity(entity_type=EntityType.COMPANY.value, name="Acme"))

    with session_scope() as session:
        assert session.scalar(select(TaxEntity.name)) == "Acme"


def test_session_scope_rolls_back_on_error():
    with pytest.raises(RuntimeError):
        with session_scope() as session:
            session.add(TaxEntity(entity_type=EntityType.COMPANY.value, name="Ghost"))
            session.flush()
            raise RuntimeError("boom")

    with session_scope() as session:
        assert session.scalar(select(TaxEntity).where(TaxEntity.name == "Ghost")) is None


def test_unique_constraints_follow_naming_convention():
    names = {c.name for c in Base.metadata.tables["withholding_remittances"].constraints}
    assert "pk_withholding_remittances" in names
