"""Pytest configuration: in-memory database and seeded lookup rows."""

import os
from decimal import Decimal

# Set test database URL BEFORE any imports from propledger
# This ensures the module-level engine never touches a file database
os.environ["DATABASE_URL"] = "sqlite:///:memory:"

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from propledger.models import (  # noqa: E402
    Account,
    Base,
    CategoryType,
    ExpenseCategory,
    Meter,
    Property,
    Submeter,
    Tenant,
    Unit,
    UnitStatus,
    User,
    UtilityType,
)


@pytest.fixture
def db_session():
    """Create test database session."""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def account(db_session):
    """Landlord account owning every seeded row."""
    account = Account(name="Harbour Lettings")
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture
def other_account(db_session):
    """Second account, for numbering and ownership isolation."""
    account = Account(name="Hillside Estates")
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture
def user(db_session, account):
    """Staff user entering readings and payments."""
    user = User(account_id=account.id, name="Dana Clerk", email="dana@example.com")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def tenant(db_session, account):
    """Tenant renting the seeded unit."""
    tenant = Tenant(account_id=account.id, name="Robin Renter", email="robin@example.com")
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture
def other_tenant(db_session, account):
    """Second tenant of the same account."""
    tenant = Tenant(account_id=account.id, name="Sam Sublet")
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture
def property_(db_session, account):
    """Building holding the seeded units."""
    prop = Property(account_id=account.id, name="Dock Street 5", address="Dock Street 5")
    db_session.add(prop)
    db_session.commit()
    return prop


@pytest.fixture
def unit(db_session, property_):
    """Vacant unit with a default rent."""
    unit = Unit(property_id=property_.id, name="Flat 1", status=UnitStatus.VACANT, rent_amount=Decimal("1000.00"))
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture
def other_unit(db_session, property_):
    """Second unit of the same property."""
    unit = Unit(property_id=property_.id, name="Flat 2", status=UnitStatus.VACANT, rent_amount=Decimal("800.00"))
    db_session.add(unit)
    db_session.commit()
    return unit


@pytest.fixture
def chargeable_category(db_session, account):
    """Category whose expenses are billed to tenants."""
    category = ExpenseCategory(account_id=account.id, name="Repairs", type=CategoryType.TENANT_CHARGEABLE)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def owner_category(db_session, account):
    """Category carried by the owner, never billed."""
    category = ExpenseCategory(account_id=account.id, name="Insurance", type=CategoryType.OWNER)
    db_session.add(category)
    db_session.commit()
    return category


@pytest.fixture
def utility_type(db_session, account):
    """Electricity priced at 2.5 per kWh."""
    utility = UtilityType(account_id=account.id, name="Electricity", unit_rate=Decimal("2.5"))
    db_session.add(utility)
    db_session.commit()
    return utility


@pytest.fixture
def meter(db_session, account, property_, utility_type):
    """Main electricity meter of the property."""
    meter = Meter(
        account_id=account.id,
        property_id=property_.id,
        utility_type_id=utility_type.id,
        name="Main electricity",
    )
    db_session.add(meter)
    db_session.commit()
    return meter


@pytest.fixture
def submeter(db_session, meter, unit):
    """Submeter measuring the seeded unit."""
    submeter = Submeter(meter_id=meter.id, unit_id=unit.id, name="Flat 1 electricity")
    db_session.add(submeter)
    db_session.commit()
    return submeter
