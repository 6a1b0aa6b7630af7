from __future__ import annotations

import csv
import json
from pathlib import Path

from .domain import Actor, Workshop
from .errors import ValidationError


class ImportFileError(Exception):
    pass


def import_workshops_json(conn, path: str | Path, workshop_repo) -> int:
    p = Path(path)
    if not p.exists():
        raise ImportFileError(f"File not found: {p}")

    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except Exception as e:
        raise ImportFileError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise ImportFileError("JSON must be a list of objects")

    count = 0
    for obj in data:
        if not isinstance(obj, dict):
            continue
        wid = str(obj.get("id", "")).strip()
        name = str(obj.get("name", "")).strip()
        owner_id = str(obj.get("ownerId", obj.get("owner_id", ""))).strip()
        if not wid or not name or not owner_id:
            continue

        rating = float(obj.get("rating", 0) or 0)
        reviews = int(obj.get("reviews", 0) or 0)
        workshop_repo.upsert(
            conn,
            workshop=Workshop(
                id=wid,
                name=name,
                owner_id=owner_id,
                location=str(obj.get("location", "")).strip(),
                rating=rating,
                reviews=reviews,
                rating_total=int(obj.get("ratingTotal") or round(rating * reviews)),
                status="INACTIVE" if str(obj.get("status", "ACTIVE")).upper() == "INACTIVE" else "ACTIVE",
            ),
        )
        count += 1
    return count


def import_vehicles_csv(conn, path: str | Path, vehicle_service) -> int:
    p = Path(path)
    if not p.exists():
        raise ImportFileError(f"File not found: {p}")

    count = 0
    with p.open("r", encoding="utf-8", newline="") as f:
        reader = csv.DictReader(f)
        required = {"user_id", "name", "plate"}
        if not required.issubset(set(reader.fieldnames or [])):
            raise ImportFileError(f"CSV must contain columns: {sorted(required)}")

        for line, row in enumerate(reader, start=2):
            user_id = (row.get("user_id") or "").strip()
            if not user_id:
                continue
            try:
                vehicle_service.add_vehicle(
                    conn,
                    actor=Actor(user_id=user_id, role="customer"),
                    name=row.get("name") or "",
                    plate=row.get("plate") or "",
                    brand=row.get("brand") or "",
                    model=row.get("model") or "",
                    year=row.get("year") or "",
                    capacity=row.get("capacity") or "",
                    is_primary=str(row.get("is_primary", "false")).strip().lower() in {"1", "true", "yes"},
                )
            except ValidationError as e:
                raise ImportFileError(f"Line {line}: {e}") from e
            count += 1
    return count
