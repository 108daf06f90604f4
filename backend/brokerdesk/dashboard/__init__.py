from brokerdesk.dashboard.guards import Guard, RoleGuard, PrivilegeGuard, CapabilityGuard, ConditionalRender, AllOf
from brokerdesk.dashboard.layout import DashboardLayout, ShellState, ShellView
from brokerdesk.dashboard.composer import PageView, SectionView, compose_page
from brokerdesk.dashboard.pages import PAGES, PageSpec, get_page

__all__ = [
    "Guard", "RoleGuard", "PrivilegeGuard", "CapabilityGuard", "ConditionalRender", "AllOf",
    "DashboardLayout", "ShellState", "ShellView",
    "PageView", "SectionView", "compose_page",
    "PAGES", "PageSpec", "get_page",
]
