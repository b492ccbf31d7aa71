"""Load the province / branch / department tables into an ``OrgDirectory``."""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from geoaccess.models.org import BranchRow, DepartmentRow, ProvinceRow
from geoaccess.schemas import Branch, Department, OrgDirectory, Province

logger = logging.getLogger(__name__)


async def load_directory(db: AsyncSession) -> OrgDirectory:
    """Read all three tables, inactive rows included.

    Provinces keep their configured sort order; branches and departments are
    ordered by code.
    """
    province_rows = (
        await db.execute(select(ProvinceRow).order_by(ProvinceRow.sort_order, ProvinceRow.name))
    ).scalars().all()
    branch_rows = (await db.execute(select(BranchRow).order_by(BranchRow.code))).scalars().all()
    department_rows = (
        await db.execute(select(DepartmentRow).order_by(DepartmentRow.code))
    ).scalars().all()

    codes_by_province: dict[str, list[str]] = {}
    branches: dict[str, Branch] = {}
    for b in branch_rows:
        codes_by_province.setdefault(b.province_id, []).append(b.code)
        branches[b.code] = Branch(
            code=b.code,
            name=b.name,
            province_id=b.province_id,
            is_active=b.is_active,
            warehouse_ids=list(b.warehouse_ids or []),
        )

    provinces = {
        p.id: Province(
            id=p.id,
            name=p.name,
            region=p.region,
            is_active=p.is_active,
            branch_codes=codes_by_province.get(p.id, []),
            manager_id=p.manager_id,
        )
        for p in province_rows
    }
    departments = {
        d.code: Department(code=d.code, name=d.name, is_active=d.is_active)
        for d in department_rows
    }

    orphans = set(codes_by_province) - set(provinces)
    if orphans:
        logger.warning(f"[directory] branches reference unknown provinces: {sorted(orphans)}")

    logger.info(
        f"[directory] loaded {len(provinces)} provinces, {len(branches)} branches, "
        f"{len(departments)} departments"
    )
    return OrgDirectory(provinces=provinces, branches=branches, departments=departments)
