#!/usr/bin/env python3
"""
Seed script for delivery zones, vendor types and subscription packages
"""
import os
import sys
sys.path.insert(0, os.path.dirname(__file__))

from decimal import Decimal

from database.connection import SessionLocal, create_tables
from models.delivery import DeliveryZone
from models.vendor import VendorType, SubscriptionPackage

ZONES = [
    {"name": "City Centre", "description": "Downtown and business district", "delivery_fee": Decimal("1000.00"), "estimated_delivery_hours": 24},
    {"name": "Inner Suburbs", "description": "Residential areas within the ring road", "delivery_fee": Decimal("1500.00"), "estimated_delivery_hours": 24},
    {"name": "Outer Suburbs", "description": "Areas beyond the ring road", "delivery_fee": Decimal("2500.00"), "estimated_delivery_hours": 48},
]

VENDOR_TYPES = [
    {"name": "Vendor", "commission_rate": Decimal("10.00"), "packages": []},
    {"name": "Vendor Plus", "commission_rate": Decimal("8.00"), "packages": [
        {"name": "Plus Monthly", "price": Decimal("5000.00"), "duration_months": 1, "commission_rate": Decimal("7.50")},
    ]},
    {"name": "Vendor Pro", "commission_rate": Decimal("6.00"), "packages": [
        {"name": "Pro Monthly", "price": Decimal("10000.00"), "duration_months": 1, "commission_rate": Decimal("5.00")},
        {"name": "Pro Yearly", "price": Decimal("100000.00"), "duration_months": 12, "commission_rate": Decimal("4.00")},
    ]},
]

def seed():
    create_tables()
    db = SessionLocal()

    try:
        for zone_data in ZONES:
            if not db.query(DeliveryZone).filter(DeliveryZone.name == zone_data["name"]).first():
                db.add(DeliveryZone(**zone_data))
                print(f"Created zone: {zone_data['name']}")

        for type_data in VENDOR_TYPES:
            vendor_type = db.query(VendorType).filter(VendorType.name == type_data["name"]).first()
            if vendor_type:
                continue
            vendor_type = VendorType(name=type_data["name"], commission_rate=type_data["commission_rate"])
            for package_data in type_data["packages"]:
                vendor_type.packages.append(SubscriptionPackage(**package_data))
            db.add(vendor_type)
            print(f"Created vendor type: {type_data['name']} ({len(type_data['packages'])} packages)")

        db.commit()
        print("Seed data created successfully!")

    except Exception as e:
        db.rollback()
        print(f"Error seeding data: {str(e)}")
        raise
    finally:
        db.close()

if __name__ == "__main__":
    seed()
