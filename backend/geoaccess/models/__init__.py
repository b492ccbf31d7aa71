from geoaccess.models.identity import IdentityCredential
from geoaccess.models.org import BranchRow, DepartmentRow, ProvinceRow
from geoaccess.models.profile import ProfileDocument

__all__ = [
    # Organizational hierarchy
    "ProvinceRow",
    "BranchRow",
    "DepartmentRow",
    # Identity & profile
    "IdentityCredential",
    "ProfileDocument",
]
