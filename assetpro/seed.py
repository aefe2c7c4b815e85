from __future__ import annotations

from typing import Any, Dict, List

DEFAULT_CATEGORIES = [
    "Facilities",
    "IT Infrastructure",
    "Manufacturing",
    "Office Equipment",
    "Safety Gear",
    "Vehicles",
]

DEFAULT_LOCATIONS = [
    "Data Center Room A",
    "Meeting Room 2",
    "Rooftop Section 4",
]


def demo_snapshot() -> Dict[str, List[Dict[str, Any]]]:
    """First-run demo data. Technician workloads agree with the open orders."""
    assets = [
        {
            "id": "AST-001",
            "name": "Server Rack HP ProLiant",
            "category": "IT Infrastructure",
            "location": "Data Center Room A",
            "purchase_date": "2023-01-15",
            "arrived_date": "2023-01-20",
            "status": "Operational",
            "image_url": "https://picsum.photos/seed/server/400/300",
            "last_maintenance": "2023-12-10",
        },
        {
            "id": "AST-002",
            "name": "Industrial HVAC Unit",
            "category": "Facilities",
            "location": "Rooftop Section 4",
            "purchase_date": "2022-05-20",
            "arrived_date": "2022-06-05",
            "status": "Maintenance",
            "image_url": "https://picsum.photos/seed/hvac/400/300",
            "last_maintenance": "2024-02-01",
        },
        {
            "id": "AST-003",
            "name": "Office Projector 4K",
            "category": "Office Equipment",
            "location": "Meeting Room 2",
            "purchase_date": "2023-08-11",
            "arrived_date": "2023-08-15",
            "status": "Under Repair",
            "image_url": "https://picsum.photos/seed/projector/400/300",
            "last_maintenance": "2023-11-20",
        },
    ]
    technicians = [
        {
            "id": "TECH-01",
            "name": "Budi Santoso",
            "specialty": "Electrical",
            "active_tasks": 0,
            "password": "password123",
            "rank": "Senior Specialist",
        },
        {
            "id": "TECH-02",
            "name": "Siti Aminah",
            "specialty": "HVAC",
            "active_tasks": 0,
            "password": "password123",
            "rank": "Expert Advisor",
        },
        {
            "id": "TECH-03",
            "name": "Andi Wijaya",
            "specialty": "IT Network",
            "active_tasks": 1,
            "password": "password123",
            "rank": "Junior Associate",
        },
    ]
    spks = [
        {
            "id": "SPK-2024-001",
            "asset_id": "AST-003",
            "technician_id": "TECH-03",
            "title": "Lamp Replacement",
            "description": "Projector lamp is flickering and dim.",
            "priority": "Medium",
            "status": "In Progress",
            "created_at": "2024-02-15",
            "due_date": "2024-02-28",
            "evidence": [],
        }
    ]
    return {"assets": assets, "technicians": technicians, "spks": spks}
