from schemas.entities import (
    Association,
    AssociationCreate,
    AssociationMember,
    AssociationMemberCreate,
    AuditLog,
    AuditLogCreate,
    Convention,
    ConventionCreate,
    ConventionMember,
    ConventionMemberCreate,
    EquipmentSet,
    EquipmentSetCreate,
    EquipmentSetItem,
    Item,
    ItemCreate,
    Profile,
    ProfileCreate,
    SystemSetting,
    User,
    UserCreate,
)

__all__ = [
    "Association", "AssociationCreate",
    "AssociationMember", "AssociationMemberCreate",
    "AuditLog", "AuditLogCreate",
    "Convention", "ConventionCreate",
    "ConventionMember", "ConventionMemberCreate",
    "EquipmentSet", "EquipmentSetCreate", "EquipmentSetItem",
    "Item", "ItemCreate",
    "Profile", "ProfileCreate",
    "SystemSetting",
    "User", "UserCreate",
]
