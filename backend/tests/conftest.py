import pytest

from fleet_import.models import Branch, CandidateRecord, Category, ReferenceSnapshot, Vehicle
from fleet_import.store import InMemoryStore

VIN_1 = "1HGCM82633A004352"
VIN_2 = "2FTRX18W1XCA12345"

CSV_HEADER = "Date,Vehicle,Branch,Category,Amount,Description,Odometer"


@pytest.fixture
def vehicles():
    return [
        Vehicle(id="v1", plate="ABC123", vin=VIN_1, make="Ford", model="Transit", branch_id="b1"),
        Vehicle(id="v2", plate="XYZ789", vin=VIN_2, make="Ram", model="1500", branch_id="b2"),
    ]


@pytest.fixture
def branches():
    return [
        Branch(id="b1", name="Main", location="Downtown Depot"),
        Branch(id="b2", name="North", location="Northgate Yard"),
    ]


@pytest.fixture
def categories():
    return [
        Category(id="c1", name="Fuel", type="operating"),
        Category(id="c2", name="Maintenance", type="operating"),
        Category(id="c3", name="Tires", type="operating"),
    ]


@pytest.fixture
def snapshot(vehicles, branches, categories):
    return ReferenceSnapshot(
        vehicles=tuple(vehicles), branches=tuple(branches), categories=tuple(categories)
    )


@pytest.fixture
def store(vehicles, branches, categories):
    return InMemoryStore(vehicles=vehicles, branches=branches, categories=categories)


def make_record(vehicle="ABC123", amount=100.0, **kw):
    defaults = dict(
        date="2024-03-01",
        vehicle_text=vehicle,
        branch_text=None,
        category_text="Fuel",
        amount=amount,
        description="",
        odometer=None,
        source_file="fuel.csv",
        line_number=2,
    )
    defaults.update(kw)
    return CandidateRecord(**defaults)
