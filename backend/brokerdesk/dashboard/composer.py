"""
Page composition: shell decision, guarded sections, and the scoped queries
the visible sections need.

Queries are only produced for an AUTHORIZED shell, and only for sections whose
guards pass, so a denied or unauthenticated visitor causes no privileged reads.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from brokerdesk.auth.principal import IdentityState
from brokerdesk.dashboard.layout import ShellState, ShellView
from brokerdesk.dashboard.navigation import navigation_for
from brokerdesk.dashboard.pages import ActionSpec, PageSpec, SectionSpec
from brokerdesk.scoping import QueryKey


@dataclass(frozen=True)
class ActionView:
    id: str
    label: str
    method: str
    path: str
    invalidates: tuple[QueryKey, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "method": self.method,
            "path": self.path,
            "invalidates": [str(k) for k in self.invalidates],
        }


@dataclass(frozen=True)
class SectionView:
    id: str
    title: str
    queries: tuple[QueryKey, ...] = ()
    actions: tuple[ActionView, ...] = ()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "queries": [str(k) for k in self.queries],
            "actions": [a.to_dict() for a in self.actions],
        }


@dataclass(frozen=True)
class PageView:
    slug: str
    shell: ShellView
    queries: dict[str, QueryKey] = field(default_factory=dict)

    @property
    def state(self) -> ShellState:
        return self.shell.state

    @property
    def sections(self) -> tuple[SectionView, ...]:
        return self.shell.body or ()

    def section(self, section_id: str) -> SectionView | None:
        return next((s for s in self.sections if s.id == section_id), None)

    def to_dict(self) -> dict:
        out = {"slug": self.slug, **self.shell.to_dict()}
        if self.state is ShellState.AUTHORIZED:
            out["sections"] = [s.to_dict() for s in self.sections]
            out["queries"] = {qid: str(key) for qid, key in self.queries.items()}
        return out


def compose_page(page: PageSpec, identity: IdentityState) -> PageView:
    layout = page.layout
    if layout.evaluate(identity) is not ShellState.AUTHORIZED:
        return PageView(page.slug, layout.render(identity))

    principal = identity.principal
    keys = {q.id: q.key_for(principal) for q in page.queries}
    sections: list[SectionView] = []
    used: dict[str, QueryKey] = {}

    for spec in page.sections:
        view = _section_view(spec, identity, keys)
        rendered = spec.guard.render(identity, view) if spec.guard else view
        if rendered is None:
            continue
        sections.append(rendered)
        if rendered is view:
            used.update((qid, keys[qid]) for qid in spec.queries)

    shell = layout.render(
        identity,
        body=tuple(sections),
        navigation=navigation_for(identity, page.path),
    )
    return PageView(page.slug, shell, used)


def _section_view(spec: SectionSpec, identity: IdentityState, keys: dict[str, QueryKey]) -> SectionView:
    actions = tuple(
        _action_view(a, keys) for a in spec.actions
        if a.guard is None or a.guard.evaluate(identity)
    )
    return SectionView(
        id=spec.id,
        title=spec.title,
        queries=tuple(keys[qid] for qid in spec.queries),
        actions=actions,
    )


def _action_view(spec: ActionSpec, keys: dict[str, QueryKey]) -> ActionView:
    return ActionView(
        id=spec.id,
        label=spec.label,
        method=spec.method,
        path=spec.path,
        invalidates=tuple(keys[qid] for qid in spec.invalidates if qid in keys),
    )
