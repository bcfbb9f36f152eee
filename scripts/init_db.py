#!/usr/bin/env python3
"""
Pipe Yard Database Initialization Script
Creates tables, seeds the yard layout and the first yard admin
"""
import argparse
import logging
import os

from pipeyard.core.database import SessionLocal, init_db
from pipeyard.models.auth import User
from pipeyard.models.yard import AllocationMode, Rack, YardArea
from pipeyard.core.security import get_password_hash

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Yard A holds single-bundle slot racks; yards B and C hold linear racks
SLOT_YARDS = {"A": ("Yard A", ["A1", "A2"], 11)}
LINEAR_YARDS = {
    "B": ("Yard B", ["N", "E", "S", "W", "M"], 9),
    "C": ("Yard C", ["N", "E", "S", "W", "M"], 9),
}
SLOT_RACK_LENGTH_M = 14.5
LINEAR_RACK_CAPACITY = 200
LINEAR_RACK_CAPACITY_M = 2400


def yard_layout():
    """Yields (area, [racks]) for the standard yard layout"""
    for yard_id, (yard_name, areas, racks_per_area) in SLOT_YARDS.items():
        for area_code in areas:
            area_id = f"{yard_id}-{area_code}"
            area = YardArea(id=area_id, yard_id=yard_id, yard_name=yard_name,
                            name=f"Area {area_code}", allocation_mode=AllocationMode.SLOT.value)
            racks = [
                Rack(id=f"{area_id}-{n}", area_id=area_id, name=f"Slot {n}",
                     capacity=1, capacity_length=SLOT_RACK_LENGTH_M,
                     occupied=0, occupied_length=0,
                     allocation_mode=AllocationMode.SLOT.value,
                     length_meters=SLOT_RACK_LENGTH_M)
                for n in range(1, racks_per_area + 1)
            ]
            yield area, racks

    for yard_id, (yard_name, areas, racks_per_area) in LINEAR_YARDS.items():
        for area_code in areas:
            area_id = f"{yard_id}-{area_code}"
            area = YardArea(id=area_id, yard_id=yard_id, yard_name=yard_name,
                            name=f"Area {area_code}", allocation_mode=AllocationMode.LINEAR_CAPACITY.value)
            racks = [
                Rack(id=f"{area_id}-{n}", area_id=area_id, name=f"Rack {n}",
                     capacity=LINEAR_RACK_CAPACITY, capacity_length=LINEAR_RACK_CAPACITY_M,
                     occupied=0, occupied_length=0,
                     allocation_mode=AllocationMode.LINEAR_CAPACITY.value)
                for n in range(1, racks_per_area + 1)
            ]
            yield area, racks


def seed_yard(db) -> int:
    """Insert any area or rack of the layout that is missing; existing occupancy is left alone"""
    created = 0
    for area, racks in yard_layout():
        if db.get(YardArea, area.id) is None:
            db.add(area)
            db.flush()
        for rack in racks:
            if db.get(Rack, rack.id) is None:
                db.add(rack)
                created += 1
    db.commit()
    return created


def seed_admin(db, username: str, email: str, password: str) -> bool:
    if db.query(User).filter(User.username == username).first():
        return False
    db.add(User(
        username=username,
        email=email,
        full_name="Yard Administrator",
        password_hash=get_password_hash(password),
        is_admin=True,
        is_active=True,
        failed_logins=0,
    ))
    db.commit()
    return True


def main():
    parser = argparse.ArgumentParser(description="Initialise the pipe yard database")
    parser.add_argument("--admin-username", default=os.environ.get("PIPEYARD_ADMIN_USERNAME", "admin"))
    parser.add_argument("--admin-email", default=os.environ.get("PIPEYARD_ADMIN_EMAIL", "admin@example.com"))
    parser.add_argument("--admin-password", default=os.environ.get("PIPEYARD_ADMIN_PASSWORD"))
    args = parser.parse_args()

    init_db()

    db = SessionLocal()
    try:
        created = seed_yard(db)
        logger.info(f"Yard layout seeded: {created} new racks")

        if args.admin_password:
            if seed_admin(db, args.admin_username, args.admin_email, args.admin_password):
                logger.info(f"Admin user {args.admin_username} created")
            else:
                logger.info(f"Admin user {args.admin_username} already exists")
        else:
            logger.warning("No admin password given; skipping admin user")
    finally:
        db.close()

    logger.info("Database initialization completed successfully")


if __name__ == "__main__":
    main()
