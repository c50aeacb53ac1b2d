"""Résolution de l'action fournisseur (LIFT, REBOX...) par spécificité des règles."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from partlink.matching.schema import ACTION_NONE
from partlink.records import WILDCARD, VendorActionRule
from partlink.stores import RuleStore, StoreUnavailableError

logger = logging.getLogger(__name__)

# (code ligne fournisseur, catégorie, sous-catégorie)
VendorActionQuery = tuple[str | None, str | None, str | None]


def rule_priority(rule: VendorActionRule, category: str | None, subcategory: str | None) -> int:
    """
    Spécificité d'une règle : 3 = catégorie et sous-catégorie exactes,
    2 = catégorie exacte et sous-catégorie joker, 1 = double joker, 0 sinon.
    """
    category_exact = rule.category_pattern != WILDCARD and rule.category_pattern == category
    subcategory_exact = rule.subcategory_pattern != WILDCARD and rule.subcategory_pattern == subcategory
    category_wild = rule.category_pattern == WILDCARD
    subcategory_wild = rule.subcategory_pattern == WILDCARD

    if category_exact and subcategory_exact:
        return 3
    if category_exact and subcategory_wild:
        return 2
    if category_wild and subcategory_wild:
        return 1
    return 0


def rule_matches(
    rule: VendorActionRule,
    supplier_line_code: str | None,
    category: str | None,
    subcategory: str | None,
) -> bool:
    if rule.supplier_line_code != supplier_line_code:
        return False
    if rule.category_pattern != WILDCARD and rule.category_pattern != category:
        return False
    return rule.subcategory_pattern == WILDCARD or rule.subcategory_pattern == subcategory


def resolve_vendor_action(
    rules: Iterable[VendorActionRule],
    supplier_line_code: str | None,
    category: str | None,
    subcategory: str | None,
) -> str:
    """
    Action de la règle active la plus spécifique, ou NONE.

    À priorité égale, la première règle rencontrée l'emporte.
    """
    if not supplier_line_code:
        return ACTION_NONE

    best_action = ACTION_NONE
    best_priority = 0
    for rule in rules:
        if not rule.active or not rule_matches(rule, supplier_line_code, category, subcategory):
            continue
        priority = rule_priority(rule, category, subcategory)
        if priority > best_priority:
            best_priority = priority
            best_action = rule.action
    return best_action


def resolve_vendor_actions_batch(
    store: RuleStore,
    queries: Sequence[VendorActionQuery],
    project_id: str | None = None,
) -> list[str]:
    """
    Résout un lot de requêtes avec une seule lecture des règles.

    Si la table est indisponible, toutes les actions valent NONE.
    """
    line_codes = sorted({lc for lc, _, _ in queries if lc})
    if not line_codes:
        return [ACTION_NONE] * len(queries)

    try:
        rules = store.fetch_vendor_action_rules(line_codes, project_id)
    except StoreUnavailableError as e:
        logger.warning("Règles d'action fournisseur indisponibles, actions à NONE: %s", e)
        return [ACTION_NONE] * len(queries)

    by_line_code: dict[str, list[VendorActionRule]] = {}
    for rule in rules:
        by_line_code.setdefault(rule.supplier_line_code, []).append(rule)

    return [
        resolve_vendor_action(by_line_code.get(lc or "", ()), lc, category, subcategory)
        for lc, category, subcategory in queries
    ]
