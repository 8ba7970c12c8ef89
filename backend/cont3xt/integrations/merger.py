"""Result merger and link visibility filter.

Source payloads are heterogeneous; before an outcome leaves the service its
payload is normalized to a JSON object and any ``links`` it carries are
checked against the link group that owns them. A link survives only when
the requesting user holds one of that group's view roles.

Link entries look like ``{"name": ..., "url": ..., "link_group_id": ...}``.
"""

from collections.abc import AsyncIterator, Iterable, Mapping
from dataclasses import replace
from typing import Any

from cont3xt.integrations.orchestrator import OutcomeStatus, SourceOutcome
from cont3xt.models.link_group import LinkGroup
from cont3xt.models.user import User

LINKS_FIELD = "links"


def normalize_payload(payload: Any) -> dict[str, Any]:
    """Coerce any driver payload into a JSON object."""
    if payload is None:
        return {}
    if isinstance(payload, Mapping):
        return dict(payload)
    if isinstance(payload, (list, tuple, set)):
        return {"items": list(payload)}
    return {"value": payload}


def _link_group_id(link: Any) -> str | None:
    if not isinstance(link, Mapping):
        return None
    return link.get("link_group_id") or link.get("linkGroupId")


def _index_groups(link_groups: Iterable[LinkGroup] | Mapping[str, LinkGroup]) -> Mapping[str, LinkGroup]:
    if isinstance(link_groups, Mapping):
        return link_groups
    return {group.id: group for group in link_groups}


def visible_links(
    links: Iterable[Any],
    user: User,
    link_groups: Mapping[str, LinkGroup],
) -> list[Any]:
    """Links whose owning group the user may view, order preserved."""
    kept = []
    for link in links:
        group = link_groups.get(_link_group_id(link) or "")
        if group is not None and group.viewable_by(user.roles):
            kept.append(link)
    return kept


def filter_outcome(
    outcome: SourceOutcome,
    user: User,
    link_groups: Iterable[LinkGroup] | Mapping[str, LinkGroup],
) -> SourceOutcome | None:
    """Normalize an outcome's payload and strip links the user cannot view.

    Returns None (suppressed) when the payload consisted only of links and
    none of them are visible. Error and timeout outcomes pass through.
    """
    if outcome.status not in (OutcomeStatus.SUCCESS, OutcomeStatus.CACHED):
        return outcome

    payload = normalize_payload(outcome.payload)
    links = payload.get(LINKS_FIELD)
    if links is None:
        return replace(outcome, payload=payload)

    if not isinstance(links, list):
        links = [links]
    kept = visible_links(links, user, _index_groups(link_groups))
    if not kept and set(payload) == {LINKS_FIELD}:
        return None

    payload[LINKS_FIELD] = kept
    return replace(outcome, payload=payload)


async def merge_stream(
    outcomes: AsyncIterator[SourceOutcome],
    user: User,
    link_groups: Iterable[LinkGroup],
) -> AsyncIterator[SourceOutcome]:
    """Filter outcomes as they arrive against one link group snapshot."""
    groups = _index_groups(link_groups)
    try:
        async for outcome in outcomes:
            filtered = filter_outcome(outcome, user, groups)
            if filtered is not None:
                yield filtered
    finally:
        aclose = getattr(outcomes, "aclose", None)
        if aclose is not None:
            await aclose()
