"""Declarative rule loading - parse compliance rules and retention policies from YAML.

A definitions file has two optional top-level lists:

    rules:
      - id: soc2_access_control
        name: SOC2 Access Control
        type: soc2
        category: access_control
        severity: high
        conditions:
          - {type: data_access, field: data.access_level, operator: not_equals, value: unauthorized}
        actions:
          - {type: block, parameters: {reason: Unauthorized access attempt}}
        metadata: {tags: [soc2], references: [SOC2 CC6.1]}

    retention_policies:
      - id: default_retention
        ...

Entries that cannot be parsed are skipped with a warning; the rest load.
Custom predicates and callbacks cannot be declared in YAML and must be
attached in code.
"""

from pathlib import Path
from typing import Any

import yaml

from aumos_compliance_engine.core.models import (
    COMPLIANCE_CATEGORIES,
    CONDITION_OPERATORS,
    RESPONSE_TYPES,
    ComplianceCondition,
    ComplianceResponse,
    ComplianceRule,
    RetentionException,
    RetentionPolicy,
    RuleMetadata,
    SEVERITY_RANK,
)
from aumos_compliance_engine.core.validation import is_known_compliance_type
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)


def parse_rule(raw: dict[str, Any]) -> ComplianceRule:
    """Build a ComplianceRule from a YAML-deserialized mapping.

    Args:
        raw: Rule mapping.

    Returns:
        The parsed rule with fresh counters.

    Raises:
        KeyError: If a required key is missing.
        ValueError: If an enumerated value is unknown.
    """
    rule_type = raw["type"]
    if not is_known_compliance_type(rule_type):
        raise ValueError(f"Unknown compliance type '{rule_type}'")
    category = raw.get("category", "custom")
    if category not in COMPLIANCE_CATEGORIES:
        raise ValueError(f"Unknown compliance category '{category}'")
    severity = raw.get("severity", "medium")
    if severity not in SEVERITY_RANK:
        raise ValueError(f"Unknown severity '{severity}'")

    conditions = []
    for cond in raw.get("conditions", []):
        if cond["operator"] not in CONDITION_OPERATORS:
            raise ValueError(f"Unknown condition operator '{cond['operator']}'")
        conditions.append(
            ComplianceCondition(
                type=cond.get("type", "custom"),
                field=cond["field"],
                operator=cond["operator"],
                value=cond.get("value"),
            )
        )

    responses = []
    for action in raw.get("actions", []):
        if action["type"] not in RESPONSE_TYPES:
            raise ValueError(f"Unknown response type '{action['type']}'")
        responses.append(
            ComplianceResponse(type=action["type"], parameters=dict(action.get("parameters") or {}))
        )

    meta = raw.get("metadata") or {}
    return ComplianceRule(
        id=str(raw["id"]),
        name=raw["name"],
        description=raw.get("description", ""),
        type=rule_type,
        category=category,
        severity=severity,
        enabled=bool(raw.get("enabled", True)),
        conditions=conditions,
        actions=responses,
        metadata=RuleMetadata(
            created_by=meta.get("created_by", "system"),
            updated_by=meta.get("created_by", "system"),
            version=str(meta.get("version", "1.0.0")),
            tags=list(meta.get("tags", [])),
            references=list(meta.get("references", [])),
        ),
    )


def parse_retention_policy(raw: dict[str, Any]) -> RetentionPolicy:
    """Build a RetentionPolicy from a YAML-deserialized mapping.

    Raises:
        KeyError: If a required key is missing.
        ValueError: If a period is not an integer.
    """
    return RetentionPolicy(
        id=str(raw["id"]),
        name=raw["name"],
        description=raw.get("description", ""),
        data_types=list(raw["data_types"]),
        retention_period=int(raw["retention_period"]),
        archive_after=int(raw["archive_after"]),
        delete_after=int(raw["delete_after"]),
        exceptions=[
            RetentionException(
                condition=exc["condition"],
                retention_period=int(exc["retention_period"]),
                reason=exc.get("reason", ""),
            )
            for exc in raw.get("exceptions", [])
        ],
        enabled=bool(raw.get("enabled", True)),
    )


def _load_document(path: Path) -> dict[str, Any]:
    if not path.exists():
        logger.warning("Compliance definitions file not found", path=str(path))
        return {}
    document = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(document, dict):
        logger.warning("Compliance definitions file is not a mapping", path=str(path))
        return {}
    return document


def load_rules_from_yaml(path: Path) -> list[ComplianceRule]:
    """Load every parseable rule from a definitions file.

    Args:
        path: YAML file path.

    Returns:
        Parsed rules in file order.
    """
    rules: list[ComplianceRule] = []
    for raw in _load_document(path).get("rules") or []:
        try:
            rules.append(parse_rule(raw))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "Skipping malformed compliance rule",
                path=str(path),
                rule_id=raw.get("id") if isinstance(raw, dict) else None,
                error=str(exc),
            )
    logger.info("Loaded compliance rules", path=str(path), count=len(rules))
    return rules


def load_retention_policies_from_yaml(path: Path) -> list[RetentionPolicy]:
    """Load every parseable retention policy from a definitions file.

    Args:
        path: YAML file path.

    Returns:
        Parsed policies in file order.
    """
    policies: list[RetentionPolicy] = []
    for raw in _load_document(path).get("retention_policies") or []:
        try:
            policies.append(parse_retention_policy(raw))
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning(
                "Skipping malformed retention policy",
                path=str(path),
                policy_id=raw.get("id") if isinstance(raw, dict) else None,
                error=str(exc),
            )
    logger.info("Loaded retention policies", path=str(path), count=len(policies))
    return policies
