"""Combine structural, search and user filter intents into one predicate.

Slots are set and cleared independently. Combination follows a strict
precedence (user, then search, then structural) unless the orchestrator runs
in ``combine-all`` mode. Search and user predicates are widened so the
ancestors of every match stay reachable from a root; structural predicates
are used as given.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from loguru import logger

from treepager.core.filters.builders import (
    ancestor_paths_filter,
    ancestors_by_sort_filter,
    children_filter,
    path_children_filter,
    path_range_filter,
    root_filter,
    search_filter,
    subtree_filter,
    user_filter_conditions,
    visible_nodes_filter,
)
from treepager.core.filters.predicate import NO_RESTRICTION, Predicate, and_, or_
from treepager.core.filters.search_policy import SearchPolicy
from treepager.core.hierarchy.path import ancestor_paths_for, is_valid_path
from treepager.models.node import Record


class CombineMode(StrEnum):
    FIRST_MATCH = "first-match"
    COMBINE_ALL = "combine-all"


class ExpansionTier(StrEnum):
    SORT_RANGE = "sort_range"
    PATH_PREFIX = "path_prefix"
    ROOTS = "roots"
    NONE = "none"


@dataclass(frozen=True)
class FilterConfig:
    """Attribute names the orchestrator builds predicates over.

    An attribute set to None is treated as unavailable. Sort-range expansion
    is only used when both ``sort_attribute`` and ``depth_attribute`` appear
    in ``indexed_attributes``.
    """

    id_attribute: str = "id"
    parent_attribute: str | None = "parent_id"
    path_attribute: str | None = "path"
    sort_attribute: str | None = "sort_order"
    depth_attribute: str | None = "depth"
    search_attributes: tuple[str, ...] = ("label", "note")
    indexed_attributes: frozenset[str] = frozenset()
    root_depth: int = 0
    mode: CombineMode = CombineMode.FIRST_MATCH


@dataclass
class _Slots:
    parent: Predicate | None = None
    structure: Predicate | None = None
    subtree: Predicate | None = None
    expansion: Predicate | None = None
    search: Predicate | None = None
    search_text: str | None = None
    user: list[Predicate] = field(default_factory=list)

    def structural(self) -> list[Predicate]:
        slots = (self.parent, self.structure, self.subtree, self.expansion)
        return [p for p in slots if p is not None]


class FilterOrchestrator:
    """Owns the filter slots and the matches derived from the last fetch."""

    def __init__(
        self,
        config: FilterConfig | None = None,
        *,
        search_policy: SearchPolicy | None = None,
    ) -> None:
        self.config = config or FilterConfig()
        self.search_policy = search_policy or SearchPolicy()
        self._slots = _Slots()
        self._matches: dict[str, Record] = {}
        self._known: dict[str, Record] = {}
        self._ancestor_paths: frozenset[str] = frozenset()
        self._ancestor_ids: frozenset[str] = frozenset()
        self.last_expansion_tier = ExpansionTier.NONE

    # --- Slot setters ---

    def set_parent_filter(
        self,
        parent_id: str | None = None,
        *,
        parent_path: str | None = None,
    ) -> None:
        """Restrict to the direct children of a node, by path when known."""
        if parent_path is not None and self.config.path_attribute:
            self._slots.parent = path_children_filter(self.config.path_attribute, parent_path)
        elif parent_id is not None and self.config.parent_attribute:
            self._slots.parent = children_filter(self.config.parent_attribute, parent_id)
        else:
            self._slots.parent = None

    def set_structure_filter(self, start: str | None, end: str | None = None) -> None:
        """Restrict to the path range start..end, end's subtree included."""
        if start is None or not self.config.path_attribute:
            self._slots.structure = None
            return
        self._slots.structure = path_range_filter(
            self.config.path_attribute, start, end if end is not None else start
        )

    def set_subtree_filter(self, root_paths: Iterable[str] | None) -> None:
        """Restrict to the given nodes and everything below them."""
        if root_paths is None or not self.config.path_attribute:
            self._slots.subtree = None
            return
        self._slots.subtree = subtree_filter(self.config.path_attribute, root_paths)

    def set_expansion_filter(self, expanded_paths: Iterable[str] | None) -> None:
        """Restrict to nodes visible under the given expansion state."""
        if expanded_paths is None or not self.config.path_attribute:
            self._slots.expansion = None
            return
        self._slots.expansion = visible_nodes_filter(self.config.path_attribute, expanded_paths)

    def set_search_filter(self, text: str | None) -> bool:
        """Activate a search; returns False when the query is below the minimum length.

        A rejected query clears the search slot.
        """
        self._invalidate_matches()
        if not text or not self.search_policy.is_query_valid(text):
            self._slots.search = None
            self._slots.search_text = None
            return False
        self._slots.search = search_filter(text, self.config.search_attributes)
        self._slots.search_text = text.strip() if self._slots.search is not None else None
        return self._slots.search is not None

    def set_user_filters(self, values: Mapping[str, Any]) -> None:
        """Activate user filters from attribute values (unset values ignored)."""
        self.set_user_conditions(user_filter_conditions(values))

    def set_user_conditions(self, conditions: Iterable[Predicate]) -> None:
        self._invalidate_matches()
        self._slots.user = list(conditions)

    # --- Clearing ---

    def clear_search_filter(self) -> None:
        self.set_search_filter(None)

    def clear_user_filters(self) -> None:
        self.set_user_conditions(())

    def clear_structural_filters(self) -> None:
        self._slots.parent = None
        self._slots.structure = None
        self._slots.subtree = None
        self._slots.expansion = None

    def clear_all(self) -> None:
        self._slots = _Slots()
        self._invalidate_matches()
        self.last_expansion_tier = ExpansionTier.NONE

    # --- Derived state ---

    @property
    def has_user_filters(self) -> bool:
        return bool(self._slots.user)

    @property
    def has_search_filter(self) -> bool:
        return self._slots.search is not None

    @property
    def has_structural_filters(self) -> bool:
        return bool(self._slots.structural())

    @property
    def search_text(self) -> str | None:
        return self._slots.search_text

    @property
    def matching_ids(self) -> frozenset[str]:
        return frozenset(self._matches)

    @property
    def ancestor_ids(self) -> frozenset[str]:
        return self._ancestor_ids

    @property
    def ancestor_paths(self) -> frozenset[str]:
        return self._ancestor_paths

    def active_match_predicate(self) -> Predicate | None:
        """The unexpanded search or user predicate that decides what matches."""
        user = and_(*self._slots.user) if self._slots.user else None
        if self.config.mode == CombineMode.COMBINE_ALL:
            if user is None and self._slots.search is None:
                return None
            return and_(user, self._slots.search)
        if user is not None:
            return user
        return self._slots.search

    def update_matching_nodes(self, records: Iterable[Record], *, merge: bool = False) -> None:
        """Recompute matches and their ancestors from a fetch result.

        With ``merge`` the records extend what earlier fetches found, which is
        how matches in successive chunks become connected to the root.
        """
        predicate = self.active_match_predicate()
        if predicate is None:
            self._invalidate_matches()
            return
        if not merge:
            self._matches = {}
            self._known = {}
        for record in records:
            self._known[record.id] = record
            if predicate.matches(record):
                self._matches[record.id] = record
        self._refresh_ancestors()
        logger.debug(
            "Matching nodes: {} matches, {} ancestors known",
            len(self._matches),
            len(self._ancestor_ids),
        )

    def _refresh_ancestors(self) -> None:
        path_attribute = self.config.path_attribute
        if not path_attribute:
            self._ancestor_paths = frozenset()
            self._ancestor_ids = frozenset()
            return
        self._ancestor_paths = ancestor_paths_for(
            r.value(path_attribute) for r in self._matches.values()
        )
        self._ancestor_ids = frozenset(
            r.id for r in self._known.values() if r.value(path_attribute) in self._ancestor_paths
        )

    def _invalidate_matches(self) -> None:
        self._matches = {}
        self._known = {}
        self._ancestor_paths = frozenset()
        self._ancestor_ids = frozenset()

    # --- Combination ---

    def get_combined_filter(self) -> Predicate:
        """The single predicate to hand to the data source."""
        structural = and_(*self._slots.structural()) if self._slots.structural() else None
        match_predicate = self.active_match_predicate()

        if match_predicate is None:
            self.last_expansion_tier = ExpansionTier.NONE
            return structural if structural is not None else NO_RESTRICTION

        expanded = self._expand_with_ancestors(match_predicate)
        if self.config.mode == CombineMode.COMBINE_ALL:
            return and_(expanded, structural)
        return expanded

    def _expand_with_ancestors(self, predicate: Predicate) -> Predicate:
        cfg = self.config
        matches = list(self._matches.values())

        sort_attr = cfg.sort_attribute
        depth_attr = cfg.depth_attribute
        if (
            matches
            and sort_attr
            and depth_attr
            and sort_attr in cfg.indexed_attributes
            and depth_attr in cfg.indexed_attributes
        ):
            sorts = [r.value(sort_attr) for r in matches if r.value(sort_attr) is not None]
            depths = [r.value(depth_attr) for r in matches if r.value(depth_attr) is not None]
            if sorts and depths:
                self.last_expansion_tier = ExpansionTier.SORT_RANGE
                return or_(
                    predicate,
                    ancestors_by_sort_filter(
                        sort_attr, depth_attr, max_sort=min(sorts), max_depth=max(depths)
                    ),
                )

        path_attr = cfg.path_attribute
        if (
            matches
            and path_attr
            and all(is_valid_path(r.value(path_attr)) for r in matches)
        ):
            self.last_expansion_tier = ExpansionTier.PATH_PREFIX
            ancestors = ancestor_paths_filter(path_attr, (r.value(path_attr) for r in matches))
            return or_(predicate, ancestors)

        roots = root_filter(
            depth_attribute=depth_attr,
            path_attribute=path_attr,
            parent_attribute=cfg.parent_attribute,
            root_depth=cfg.root_depth,
        )
        self.last_expansion_tier = ExpansionTier.ROOTS
        logger.warning(
            "Ancestor expansion degraded to root-level nodes ({} known matches); "
            "deep matches may appear disconnected",
            len(matches),
        )
        return or_(predicate, roots)

    def debug_info(self) -> dict[str, Any]:
        combined = self.get_combined_filter()
        return {
            "mode": str(self.config.mode),
            "has_parent_filter": self._slots.parent is not None,
            "has_structure_filter": self._slots.structure is not None,
            "has_subtree_filter": self._slots.subtree is not None,
            "has_expansion_filter": self._slots.expansion is not None,
            "has_search_filter": self.has_search_filter,
            "search_text": self._slots.search_text,
            "user_filter_count": len(self._slots.user),
            "matching_count": len(self._matches),
            "ancestor_count": len(self._ancestor_ids),
            "expansion_tier": str(self.last_expansion_tier),
            "combined_filter": combined.to_dict(),
        }
