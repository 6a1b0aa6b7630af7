from __future__ import annotations

import json

import pytest

from workshopdesk.importers import ImportFileError, import_vehicles_csv, import_workshops_json


def test_import_workshops_upserts(desk, conn, tmp_path):
    p = tmp_path / "workshops.json"
    p.write_text(
        json.dumps(
            [
                {"id": "w1", "name": "Ah Seng Motor (PJ)", "ownerId": "owner-1", "location": "PJ", "rating": 1.0},
                {"id": "w3", "name": "Bangsar Tyre", "ownerId": "owner-3", "location": "Bangsar"},
                {"id": "w4", "name": "No Owner"},
                "junk",
            ]
        ),
        encoding="utf-8",
    )

    assert import_workshops_json(conn, p, desk.repos.workshop) == 2

    w1 = desk.bookings.get_workshop(conn, "w1")
    assert w1.name == "Ah Seng Motor (PJ)"
    assert desk.bookings.get_workshop(conn, "w3").owner_id == "owner-3"


def test_import_workshops_rejects_bad_files(desk, conn, tmp_path):
    with pytest.raises(ImportFileError):
        import_workshops_json(conn, tmp_path / "missing.json", desk.repos.workshop)
    p = tmp_path / "bad.json"
    p.write_text('{"id": "w1"}', encoding="utf-8")
    with pytest.raises(ImportFileError, match="list"):
        import_workshops_json(conn, p, desk.repos.workshop)


def test_import_vehicles_csv(desk, conn, tmp_path):
    p = tmp_path / "vehicles.csv"
    p.write_text(
        "user_id,name,plate,brand,model,year,is_primary\n"
        "cust-1,Myvi,WXY 1,Perodua,Myvi,2020,false\n"
        "cust-1,Civic,VAB 2,Honda,Civic,2018,true\n"
        ",Orphan,XX 1,,,,\n"
        "cust-2,Axia,JQK 3,Perodua,Axia,2021,\n",
        encoding="utf-8",
    )

    assert import_vehicles_csv(conn, p, desk.vehicles) == 3

    mine = desk.vehicles.list_vehicles(conn, "cust-1")
    assert [(v.name, v.is_primary) for v in mine] == [("Civic", True), ("Myvi", False)]
    assert desk.vehicles.list_vehicles(conn, "cust-2")[0].is_primary


def test_import_vehicles_requires_columns(desk, conn, tmp_path):
    p = tmp_path / "vehicles.csv"
    p.write_text("user_id,name\ncust-1,Myvi\n", encoding="utf-8")
    with pytest.raises(ImportFileError, match="columns"):
        import_vehicles_csv(conn, p, desk.vehicles)


def test_import_vehicles_reports_bad_line(desk, conn, tmp_path):
    p = tmp_path / "vehicles.csv"
    p.write_text("user_id,name,plate\ncust-1,Myvi,\n", encoding="utf-8")
    with pytest.raises(ImportFileError, match="Line 2"):
        import_vehicles_csv(conn, p, desk.vehicles)
