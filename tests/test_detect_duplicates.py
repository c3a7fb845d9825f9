import csv
from datetime import datetime, timezone

import pytest

from directory_pipeline.jobs import detect_duplicates
from directory_pipeline.models import Listing, MatchStrategy


@pytest.fixture
def seeded(directory):
    state = directory.add_state("North Carolina", "NC")
    raleigh = directory.add_city(state["id"], "Raleigh", state_code="nc")
    durham = directory.add_city(state["id"], "Durham", state_code="nc")

    ids = {
        "abc_llc": directory.add_listing(
            "ABC Appliance Repair LLC", raleigh["id"], state["id"], phone="(919) 555-0100", is_approved=False
        )["id"],
        "abc": directory.add_listing(
            "Abc Appliance", raleigh["id"], state["id"], phone="919.555.0100", external_id="ext-abc"
        )["id"],
        "fixit": directory.add_listing("Fixit", durham["id"], state["id"])["id"],
        "fixit_copy": directory.add_listing("fixit ", durham["id"], state["id"])["id"],
        "unique": directory.add_listing("Bull City Washers", durham["id"], state["id"], phone="+44 20 7946 0958")["id"],
    }
    return ids


def test_load_listings_reads_every_page(directory, seeded):
    listings = detect_duplicates.load_listings(page_size=2)

    assert [listing.id for listing in listings] == sorted(directory.listings)
    assert listings[0].city_name == "Raleigh"
    assert listings[0].state_name == "North Carolina"


def test_group_by_name_city_recommends_approved(seeded):
    listings = detect_duplicates.load_listings()

    groups = {group.key: group for group in detect_duplicates.group_by_name_city(listings)}

    assert set(groups) == {f"abc|{listings[0].city_id}", f"fixit|{listings[2].city_id}"}
    abc_group = groups[f"abc|{listings[0].city_id}"]
    assert abc_group.strategy is MatchStrategy.NAME_CITY
    assert abc_group.recommended_keep_id == seeded["abc"]
    assert set(abc_group.listing_ids) == {seeded["abc_llc"], seeded["abc"]}


def test_group_by_phone_matches_formatting_variants(seeded):
    groups = detect_duplicates.group_by_phone(detect_duplicates.load_listings())

    assert len(groups) == 1
    assert groups[0].key == "+19195550100"
    assert sorted(groups[0].listing_ids) == sorted([seeded["abc_llc"], seeded["abc"]])
    assert groups[0].recommended_keep_id is None


def test_group_by_exact_name_city_is_soft_match(seeded):
    groups = detect_duplicates.group_by_exact_name_city(detect_duplicates.load_listings())

    assert [group.key for group in groups] == ["fixit|durham"]
    assert groups[0].strategy.strong is False


def test_same_city_name_in_another_state_is_only_a_soft_match(directory, seeded):
    south_carolina = directory.add_state("South Carolina", "SC")
    other_raleigh = directory.add_city(south_carolina["id"], "Raleigh", state_code="sc")
    elsewhere = directory.add_listing("ABC Appliance Repair LLC", other_raleigh["id"], south_carolina["id"])["id"]
    listings = detect_duplicates.load_listings()

    name_city_ids = [group.listing_ids for group in detect_duplicates.group_by_name_city(listings)]
    exact_groups = {group.key: group for group in detect_duplicates.group_by_exact_name_city(listings)}

    assert all(elsewhere not in ids for ids in name_city_ids)
    assert sorted(exact_groups["abc appliance repair llc|raleigh"].listing_ids) == sorted([seeded["abc_llc"], elsewhere])


def test_name_city_ignores_listings_without_city(directory):
    directory.add_listing("Roaming Repair")
    directory.add_listing("Roaming Repair")

    groups = detect_duplicates.group_by_name_city(detect_duplicates.load_listings())

    assert groups == []


def test_keep_order_prefers_approved_then_external_id_then_oldest():
    older = datetime(2023, 1, 1, tzinfo=timezone.utc)
    newer = datetime(2024, 1, 1)
    listings = [
        Listing(id=1, name="a", is_approved=False, external_id="x", created_at=older),
        Listing(id=2, name="a", is_approved=True, external_id=None, created_at=newer),
        Listing(id=3, name="a", is_approved=True, external_id="y", created_at=newer),
        Listing(id=4, name="a", is_approved=True, external_id="z", created_at=older),
        Listing(id=5, name="a", is_approved=True, external_id="w", created_at=None),
    ]

    ordered = sorted(listings, key=detect_duplicates.keep_order_key)

    assert [listing.id for listing in ordered] == [4, 3, 5, 2, 1]


def test_build_report_counts(seeded):
    report = detect_duplicates.build_report(detect_duplicates.load_listings())

    assert report.total_listings == 5
    assert report.group_count(MatchStrategy.NAME_CITY) == 2
    assert report.listing_count(MatchStrategy.NAME_CITY) == 4
    assert report.group_count(MatchStrategy.PHONE) == 1
    assert report.group_count(MatchStrategy.EXACT_NAME_CITY) == 1


def test_export_report_writes_one_file_per_strategy(seeded, tmp_path):
    report = detect_duplicates.build_report(detect_duplicates.load_listings())

    paths = detect_duplicates.export_report(report, str(tmp_path / "exports"))

    assert [path.rsplit("/", 1)[-1] for path in paths] == [
        "name-city-duplicates.csv",
        "phone-duplicates.csv",
        "exact-name-city-duplicates.csv",
    ]
    with open(paths[0], newline="", encoding="utf-8") as fh:
        rows = list(csv.DictReader(fh))
    assert len(rows) == 4
    assert {row["match_strength"] for row in rows} == {"strong"}
    keep_rows = [row for row in rows if row["recommended_keep"] == "Yes"]
    assert {row["listing_id"] for row in keep_rows} == {str(seeded["abc"]), str(seeded["fixit"])}
    with open(paths[2], newline="", encoding="utf-8") as fh:
        assert {row["match_strength"] for row in csv.DictReader(fh)} == {"soft"}


def test_main_prints_report(seeded, monkeypatch, capsys):
    monkeypatch.setattr(detect_duplicates, "init_pool", lambda: None)

    assert detect_duplicates.main([]) == 0

    output = capsys.readouterr().out
    assert "NAME + CITY DUPLICATES" in output
    assert "Found 1 duplicate groups" in output


def test_main_with_no_listings(directory, monkeypatch, capsys):
    monkeypatch.setattr(detect_duplicates, "init_pool", lambda: None)

    assert detect_duplicates.main([]) == 0
    assert "No listings found." in capsys.readouterr().out


def test_main_never_writes(seeded, directory, monkeypatch, tmp_path):
    monkeypatch.setattr(detect_duplicates, "init_pool", lambda: None)
    before = {listing_id: dict(row) for listing_id, row in directory.listings.items()}

    detect_duplicates.main(["--export", str(tmp_path)])

    assert directory.listings == before
