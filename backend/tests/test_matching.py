from conftest import VIN_1, make_record

from fleet_import.matching import (
    find_missing_vehicles,
    match_branch,
    match_category,
    match_record,
    match_vehicle,
)
from fleet_import.models import Vehicle


def test_vehicle_matches_plate_or_vin_case_insensitively(vehicles):
    assert match_vehicle("abc123", vehicles).id == "v1"
    assert match_vehicle(VIN_1.lower(), vehicles).id == "v1"
    assert match_vehicle("xyz789", vehicles).id == "v2"


def test_exact_match_beats_earlier_substring_match():
    fleet = [
        Vehicle(id="long", plate="ABC1234"),
        Vehicle(id="exact", plate="ABC123"),
    ]
    assert match_vehicle("ABC123", fleet).id == "exact"


def test_substring_in_either_direction(vehicles):
    assert match_vehicle("XYZ", vehicles).id == "v2"
    assert match_vehicle("Unit ABC123 (van)", vehicles).id == "v1"


def test_blank_text_never_matches(vehicles, branches, categories):
    assert match_vehicle("", vehicles) is None
    assert match_vehicle("   ", vehicles) is None
    assert match_vehicle(None, vehicles) is None
    assert match_branch(" ", branches) is None
    assert match_category("", categories) is None


def test_empty_reference_values_do_not_match_everything():
    fleet = [Vehicle(id="blank", plate="", vin=None), Vehicle(id="real", plate="QQQ111")]
    assert match_vehicle("ZZZ999", fleet) is None
    assert match_vehicle("qqq111", fleet).id == "real"


def test_branch_matches_name_then_location(branches):
    assert match_branch("main", branches).id == "b1"
    assert match_branch("Downtown", branches).id == "b1"
    assert match_branch("northgate yard", branches).id == "b2"
    assert match_branch("Westside", branches) is None


def test_category_matches_name(categories):
    assert match_category("FUEL", categories).id == "c1"
    assert match_category("Tire", categories).id == "c3"
    assert match_category("Uncategorized", categories) is None


def test_matching_is_repeatable(snapshot):
    record = make_record(vehicle="abc", branch_text="north", category_text="maint")
    assert match_record(record, snapshot) == match_record(record, snapshot)


def test_branch_falls_back_to_vehicle_home_branch(snapshot):
    entry = match_record(make_record(vehicle="XYZ789", branch_text="Nowhere"), snapshot)
    assert entry.matched_vehicle.id == "v2"
    assert entry.matched_branch.id == "b2"


def test_explicit_branch_wins_over_vehicle_branch(snapshot):
    entry = match_record(make_record(vehicle="XYZ789", branch_text="Main"), snapshot)
    assert entry.matched_branch.id == "b1"


def test_no_vehicle_and_no_branch_leaves_branch_unmatched(snapshot):
    entry = match_record(make_record(vehicle="ZZZ999", branch_text="Nowhere"), snapshot)
    assert entry.matched_vehicle is None
    assert entry.matched_branch is None


def test_entry_copies_record_scalars(snapshot):
    record = make_record(amount=45.5, description="Fill-up", odometer=12000)
    entry = match_record(record, snapshot)
    assert entry.record is record
    assert (entry.date, entry.amount, entry.description, entry.odometer) == (
        "2024-03-01",
        45.5,
        "Fill-up",
        12000,
    )


def test_find_missing_vehicles(vehicles):
    records = [
        make_record(vehicle="ZZZ999"),
        make_record(vehicle="zzz999"),
        make_record(vehicle="ABC123"),
        make_record(vehicle="1FTFW1ET5DFC10312"),
        make_record(vehicle=None),
    ]
    rows = find_missing_vehicles(records, vehicles)
    assert len(rows) == 2
    assert rows[0]["plate"] == "ZZZ999" and rows[0]["vin"] == ""
    assert rows[1]["vin"] == "1FTFW1ET5DFC10312" and rows[1]["plate"] == ""
    assert all(r["make"] == "Unknown" and r["status"] == "active" for r in rows)
