"""Compliance engine core.

Modules:
- models: domain types (actions, rules, violations, audit, retention, reports)
- conditions: condition evaluation
- rule_registry / violation_store: rule and violation storage
- action_executor: responses to violations
- audit_trail: bounded audit log with durable persistence
- retention: retention policies and sweeps
- reporting: scoring, recommendations and reports
- services: ComplianceService facade
"""
