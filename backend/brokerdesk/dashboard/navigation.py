"""Sidebar navigation, filtered to the pages the current principal may open."""

from __future__ import annotations

from dataclasses import dataclass

from brokerdesk.auth.principal import IdentityState
from brokerdesk.dashboard.guards import RoleGuard
from brokerdesk.dashboard.pages import PAGES


@dataclass(frozen=True)
class NavItem:
    id: str
    label: str
    href: str
    active: bool = False

    def to_dict(self) -> dict:
        return {"id": self.id, "label": self.label, "href": self.href, "active": self.active}


def _is_active(href: str, current_path: str | None) -> bool:
    if current_path is None:
        return False
    if href == "/dashboard":
        return current_path in ("/dashboard", "/")
    return current_path.startswith(href)


def navigation_for(identity: IdentityState, current_path: str | None = None) -> tuple[NavItem, ...]:
    return tuple(
        NavItem(page.slug, page.nav_label, page.path, _is_active(page.path, current_path))
        for page in PAGES
        if page.nav_label and RoleGuard(page.required_roles).evaluate(identity)
    )
