"""Service-specific settings for aumos-compliance-engine.

Compliance-specific settings use the AUMOS_COMPLIANCE_ prefix and cover:
- Logging
- Audit trail bounds and durable persistence (state store)
- Violation storage bounds
- Rule and retention policy validation on insertion
- The maintenance sweep cadence
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

_DEFAULTS_PATH = Path(__file__).parent / "defaults" / "compliance_defaults.yaml"


class Settings(BaseSettings):
    """Settings for aumos-compliance-engine.

    Environment variable prefix: AUMOS_COMPLIANCE_
    """

    service_name: str = "aumos-compliance-engine"

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    log_level: str = Field(
        default="INFO",
        description="Minimum log level: DEBUG | INFO | WARNING | ERROR.",
    )
    log_json: bool = Field(
        default=True,
        description="Render log events as JSON lines. Disable for local console output.",
    )

    # -------------------------------------------------------------------------
    # Audit trail
    # -------------------------------------------------------------------------

    audit_trail_max_entries: int = Field(
        default=10_000,
        gt=0,
        description="Size of the in-memory audit ring. Oldest entries are evicted first.",
    )
    audit_ttl_days: int = Field(
        default=365,
        gt=0,
        description="Time-to-live hint passed to the state store for persisted audit entries.",
    )

    # -------------------------------------------------------------------------
    # State store - durable persistence of audit entries
    # -------------------------------------------------------------------------

    state_store_url: str = Field(
        default="",
        description="SQLAlchemy async URL for the state store. "
        "Leave empty to keep audit entries in the in-memory state store.",
    )
    state_store_pool_size: int = Field(
        default=5,
        description="Connection pool size for the state store engine.",
    )

    # -------------------------------------------------------------------------
    # Rules, violations, retention
    # -------------------------------------------------------------------------

    max_violations: int = Field(
        default=100_000,
        gt=0,
        description="Upper bound on stored violations. Oldest resolved violations are "
        "evicted first, then the oldest unresolved ones.",
    )
    enforce_rule_validation: bool = Field(
        default=True,
        description="Reject structurally invalid rules in add_rule instead of accepting them.",
    )
    enforce_policy_validation: bool = Field(
        default=True,
        description="Reject structurally invalid retention policies on insertion.",
    )
    load_default_rules: bool = Field(
        default=True,
        description="Load the bundled default rules and retention policies at startup.",
    )
    defaults_path: Path = Field(
        default=_DEFAULTS_PATH,
        description="YAML file with the default rules and retention policies.",
    )

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    maintenance_interval_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Interval between retention sweeps run by the maintenance scheduler.",
    )

    model_config = SettingsConfigDict(env_prefix="AUMOS_COMPLIANCE_")
