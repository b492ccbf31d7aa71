"""Option lists for province and branch pickers.

Rendering is left to the client; these helpers only decide which entries a
picker may offer. Each option is ``{"value", "label", <record>}``.
"""
from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from geoaccess import scope
from geoaccess.schemas import Branch, Province, UserProfile


def _profile_of(source) -> UserProfile | None:
    # Accept a session store as well as a bare profile.
    return getattr(source, "user_profile", source)


def province_options(
    source,
    all_provinces: Mapping[str, Province],
    respect_access: bool = True,
    include_inactive: bool = False,
) -> list[dict[str, Any]]:
    """Provinces the profile may pick, sorted by name."""
    profile = _profile_of(source)
    if not respect_access:
        visible = dict(all_provinces)
    else:
        visible = scope.accessible_provinces(profile, all_provinces)

    options = [
        {"value": pid, "label": p.name or pid, "province": p}
        for pid, p in visible.items()
        if include_inactive or p.is_active
    ]
    options.sort(key=lambda o: o["label"])
    return options


def branch_options(
    source,
    all_branches: Mapping[str, Branch],
    province_id: str | None = None,
    respect_access: bool = True,
    include_inactive: bool = False,
) -> list[dict[str, Any]]:
    """Branches the profile may pick, optionally restricted to one province."""
    profile = _profile_of(source)
    if not respect_access:
        visible = dict(all_branches)
    else:
        visible = scope.accessible_branches(profile, all_branches)

    options = [
        {"value": code, "label": b.name or code, "branch": b}
        for code, b in visible.items()
        if (include_inactive or b.is_active)
        and (province_id is None or b.province_id == province_id)
    ]
    options.sort(key=lambda o: o["label"])
    return options


def group_branch_options(
    source,
    all_branches: Mapping[str, Branch],
    all_provinces: Mapping[str, Province] | None = None,
    **kwargs,
) -> list[dict[str, Any]]:
    """Branch options grouped under their province, groups sorted by label."""
    groups: dict[str, list[dict[str, Any]]] = {}
    for option in branch_options(source, all_branches, **kwargs):
        groups.setdefault(option["branch"].province_id, []).append(option)

    provinces = all_provinces or {}
    result = []
    for pid, options in groups.items():
        province = provinces.get(pid)
        result.append({
            "province_id": pid,
            "label": province.name if province and province.name else pid,
            "options": options,
        })
    result.sort(key=lambda g: g["label"])
    return result


def auto_select(options: list[dict[str, Any]]) -> str | None:
    """Value to preselect when the picker has exactly one choice."""
    if len(options) == 1:
        return options[0]["value"]
    return None
