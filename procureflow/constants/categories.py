"""
Unified category table shared by Project, Procurement and Inventory.

Projects are created with legacy or departmental category names; purchase
orders and inventory records only accept the unified vocabulary below.
``map_to_unified_category`` is the single translation point.
"""

UNIFIED_CATEGORIES_BY_TYPE: dict[str, list[str]] = {
    "equipment": [
        "construction_equipment",
        "office_equipment",
        "medical_equipment",
        "agricultural_equipment",
        "industrial_equipment",
        "kitchen_equipment",
        "cleaning_equipment",
        "security_equipment",
        "telecommunications_equipment",
    ],
    "vehicle": [
        "passenger_vehicle",
        "commercial_vehicle",
        "construction_vehicle",
        "agricultural_vehicle",
        "emergency_vehicle",
        "specialized_vehicle",
    ],
    "property": [
        "office_space",
        "warehouse",
        "residential",
        "commercial_space",
        "industrial_space",
        "land",
    ],
    "software": [
        "software_development",
        "software_licenses",
        "it_equipment",
        "cloud_services",
        "cybersecurity",
        "data_management",
        "mobile_applications",
    ],
    "furniture": [
        "office_furniture",
        "hospitality_furniture",
        "residential_furniture",
        "outdoor_furniture",
        "specialized_furniture",
    ],
    "electronics": [
        "consumer_electronics",
        "home_appliances",
        "office_electronics",
        "industrial_electronics",
        "entertainment_electronics",
    ],
    "tools": [
        "hand_tools",
        "power_tools",
        "measuring_instruments",
        "safety_equipment",
        "laboratory_equipment",
    ],
    "supplies": [
        "office_supplies",
        "maintenance_parts",
        "cleaning_supplies",
        "medical_supplies",
        "food_beverages",
    ],
    "services": [
        "consulting_services",
        "training_services",
        "maintenance_services",
        "cleaning_services",
        "security_services",
        "it_services",
    ],
    "utilities": [
        "electrical_systems",
        "plumbing_systems",
        "hvac_systems",
        "telecommunications",
        "waste_management",
    ],
    "departmental": [
        "internal_training",
        "department_development",
        "process_improvement",
        "team_building",
        "skill_development",
        "research_development",
        "system_upgrade",
        "compliance_training",
        "leadership_development",
        "innovation_projects",
        "department_equipment",
        "workspace_improvement",
        "technology_adoption",
        "quality_improvement",
        "sustainability_projects",
    ],
    "other": ["other"],
}

UNIFIED_CATEGORIES = frozenset(
    cat for cats in UNIFIED_CATEGORIES_BY_TYPE.values() for cat in cats
)

# Legacy names → unified name. Unified names map to themselves implicitly.
_LEGACY_CATEGORY_MAP = {
    # Project categories
    "system_maintenance": "it_services",
    "infrastructure_upgrade": "it_equipment",
    "digital_transformation": "software_development",
    "security_enhancement": "cybersecurity",
    "process_automation": "software_development",
    "integration_project": "software_development",
    "equipment_purchase": "industrial_equipment",
    "equipment_lease": "industrial_equipment",
    "vehicle_lease": "passenger_vehicle",
    "property_lease": "office_space",
    "facility_improvement": "office_space",
    "infrastructure_development": "industrial_space",
    "equipment_maintenance": "maintenance_services",
    "training_program": "training_services",
    "capacity_building": "training_services",
    "professional_development": "skill_development",
    "consulting": "consulting_services",
    "training": "training_services",
    # Departmental project categories
    "internal": "internal_training",
    "research": "research_development",
    "development": "department_development",
    "maintenance": "system_upgrade",
    # Procurement categories
    "equipment": "industrial_equipment",
    "vehicle": "passenger_vehicle",
    "property": "office_space",
    "furniture": "office_furniture",
    "electronics": "consumer_electronics",
    "tools": "hand_tools",
}

# Inventory.type only knows a handful of buckets
_INVENTORY_TYPES = {"equipment", "vehicle", "property", "furniture", "electronics"}


def map_to_unified_category(category: str | None) -> str:
    """Translate any known project/procurement/inventory category to the unified one."""
    if not category:
        return "other"
    if category in UNIFIED_CATEGORIES:
        return category
    return _LEGACY_CATEGORY_MAP.get(category, "other")


def get_category_type(category: str | None) -> str:
    """Return the bucket (equipment, vehicle, ...) a unified category belongs to."""
    unified = map_to_unified_category(category)
    for type_name, cats in UNIFIED_CATEGORIES_BY_TYPE.items():
        if unified in cats:
            return type_name
    return "other"


def inventory_type_for(category: str | None) -> str:
    """Inventory ``type`` column value for a category."""
    type_name = get_category_type(category)
    return type_name if type_name in _INVENTORY_TYPES else "other"
