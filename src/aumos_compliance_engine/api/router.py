"""API router for aumos-compliance-engine.

All compliance endpoints are registered here and included in main.py under
the /api/v1 prefix. Routes are thin: all business logic lives in
ComplianceService, which is created once in the lifespan handler and read
from ``app.state``.

Endpoints:
- POST        /compliance/check                          - Evaluate an action against enabled rules
- POST        /compliance/actions/validate               - Structural validation of an action
- GET/POST    /compliance/rules                          - List / add rules
- GET         /compliance/rules/{id}                     - Get a rule and its counters
- PATCH       /compliance/rules/{id}                     - Update rule fields
- DELETE      /compliance/rules/{id}                     - Remove a rule
- POST        /compliance/rules/validate                 - Validate a rule without adding it
- GET         /compliance/violations                     - List violations
- POST        /compliance/violations/{id}/resolve        - Resolve a violation
- GET         /compliance/audit-trail                    - Query the audit trail
- GET/POST    /compliance/retention-policies             - List / add retention policies
- DELETE      /compliance/retention-policies/{id}        - Remove a retention policy
- POST        /compliance/retention/enforce              - Run a retention sweep
- POST        /compliance/reports                        - Generate a compliance report
- GET         /compliance/metrics                        - Engine-wide counters
"""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response

from aumos_compliance_engine.api.schemas import (
    ActionValidationResponse,
    AuditTrailEntryResponse,
    ComplianceCheckRequest,
    ComplianceResultResponse,
    MetricsResponse,
    ReportRequest,
    ReportResponse,
    RetentionEnforceRequest,
    RetentionPolicyRequest,
    RetentionPolicyResponse,
    RetentionResultResponse,
    RuleCreateRequest,
    RuleResponse,
    RuleUpdateRequest,
    RuleValidationResponse,
    ViolationResolveRequest,
    ViolationResponse,
)
from aumos_compliance_engine.core.errors import NotFoundError, ValidationError
from aumos_compliance_engine.core.models import Action, ReportPeriod
from aumos_compliance_engine.core.services import ComplianceService
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/compliance", tags=["compliance"])


def get_compliance_service(request: Request) -> ComplianceService:
    """Return the process-wide ComplianceService created in the lifespan handler.

    Raises:
        HTTPException 503: If the service has not been initialized.
    """
    service = getattr(request.app.state, "compliance_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Compliance service is not initialized")
    return service


ServiceDep = Annotated[ComplianceService, Depends(get_compliance_service)]


def _not_found(exc: NotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


def _as_utc(value: datetime | None) -> datetime | None:
    # Naive query timestamps are read as UTC; stored timestamps are always aware
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# ---------------------------------------------------------------------------
# Compliance checks
# ---------------------------------------------------------------------------


@router.post("/check", response_model=ComplianceResultResponse)
async def check_compliance(
    request: ComplianceCheckRequest,
    service: ServiceDep,
) -> ComplianceResultResponse:
    """Evaluate an action against every enabled rule.

    Args:
        request: The action and optional tenant.
        service: Injected ComplianceService.

    Returns:
        The aggregate compliance result.
    """
    logger.info("POST /compliance/check", action_type=request.action.type, user_id=request.action.user_id)
    result = await service.check_compliance(request.action, tenant_id=request.tenant_id)
    return ComplianceResultResponse.from_domain(result)


@router.post("/actions/validate", response_model=ActionValidationResponse)
async def validate_action(action: Action, service: ServiceDep) -> ActionValidationResponse:
    return ActionValidationResponse(valid=service.validate_action(action))


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


@router.get("/rules", response_model=list[RuleResponse])
async def list_rules(service: ServiceDep) -> list[RuleResponse]:
    return [RuleResponse.from_domain(rule) for rule in service.get_rules()]


@router.post("/rules", response_model=RuleResponse, status_code=201)
async def add_rule(request: RuleCreateRequest, service: ServiceDep) -> RuleResponse:
    """Add or replace a compliance rule.

    Raises:
        HTTPException 422: If the rule fails structural validation.
    """
    rule = request.to_domain()
    try:
        service.add_rule(rule)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return RuleResponse.from_domain(rule)


@router.post("/rules/validate", response_model=RuleValidationResponse)
async def validate_rule(request: RuleCreateRequest, service: ServiceDep) -> RuleValidationResponse:
    return RuleValidationResponse(valid=service.validate_rule(request.to_domain()))


@router.get("/rules/{rule_id}", response_model=RuleResponse)
async def get_rule(rule_id: str, service: ServiceDep) -> RuleResponse:
    rule = service.get_rule(rule_id)
    if rule is None:
        raise _not_found(NotFoundError("ComplianceRule", rule_id))
    return RuleResponse.from_domain(rule)


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(rule_id: str, request: RuleUpdateRequest, service: ServiceDep) -> RuleResponse:
    """Apply a partial update to a rule.

    Raises:
        HTTPException 404: If the rule does not exist.
        HTTPException 422: If the updated rule would fail validation.
    """
    try:
        updated = service.update_rule(rule_id, updated_by=request.updated_by, **request.to_changes())
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if not updated:
        raise _not_found(NotFoundError("ComplianceRule", rule_id))
    rule = service.get_rule(rule_id)
    if rule is None:
        raise _not_found(NotFoundError("ComplianceRule", rule_id))
    return RuleResponse.from_domain(rule)


@router.delete("/rules/{rule_id}", status_code=204)
async def remove_rule(rule_id: str, service: ServiceDep) -> Response:
    if not service.remove_rule(rule_id):
        raise _not_found(NotFoundError("ComplianceRule", rule_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Violations
# ---------------------------------------------------------------------------


@router.get("/violations", response_model=list[ViolationResponse])
async def list_violations(
    service: ServiceDep,
    resolved: bool | None = Query(default=None, description="Filter by resolution state"),
    rule_id: str | None = Query(default=None, description="Filter by rule id"),
) -> list[ViolationResponse]:
    return [ViolationResponse.from_domain(v) for v in service.get_violations(resolved=resolved, rule_id=rule_id)]


@router.post("/violations/{violation_id}/resolve", response_model=ViolationResponse)
async def resolve_violation(
    violation_id: str,
    request: ViolationResolveRequest,
    service: ServiceDep,
) -> ViolationResponse:
    """Resolve a violation. Resolving again overwrites resolver and notes.

    Raises:
        HTTPException 404: If the violation does not exist.
    """
    if not service.resolve_violation(violation_id, request.resolved_by, request.notes):
        raise _not_found(NotFoundError("ComplianceViolation", violation_id))
    violation = next(v for v in service.get_violations() if v.id == violation_id)
    return ViolationResponse.from_domain(violation)


# ---------------------------------------------------------------------------
# Audit trail
# ---------------------------------------------------------------------------


@router.get("/audit-trail", response_model=list[AuditTrailEntryResponse])
async def get_audit_trail(
    service: ServiceDep,
    user_id: str | None = Query(default=None),
    tenant_id: str | None = Query(default=None),
    action: str | None = Query(default=None, description="Filter by action type"),
    start_date: datetime | None = Query(default=None),
    end_date: datetime | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1, description="Most recent N entries after filtering"),
) -> list[AuditTrailEntryResponse]:
    entries = service.get_audit_trail(
        user_id=user_id,
        tenant_id=tenant_id,
        action=action,
        start_date=_as_utc(start_date),
        end_date=_as_utc(end_date),
        limit=limit,
    )
    return [AuditTrailEntryResponse.from_domain(entry) for entry in entries]


# ---------------------------------------------------------------------------
# Retention
# ---------------------------------------------------------------------------


@router.get("/retention-policies", response_model=list[RetentionPolicyResponse])
async def list_retention_policies(service: ServiceDep) -> list[RetentionPolicyResponse]:
    return [RetentionPolicyResponse.from_domain(p) for p in service.get_retention_policies()]


@router.post("/retention-policies", response_model=RetentionPolicyResponse, status_code=201)
async def add_retention_policy(request: RetentionPolicyRequest, service: ServiceDep) -> RetentionPolicyResponse:
    """Add or replace a retention policy.

    Raises:
        HTTPException 422: If the policy fails structural validation.
    """
    policy = request.to_domain()
    try:
        service.add_retention_policy(policy)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return RetentionPolicyResponse.from_domain(policy)


@router.delete("/retention-policies/{policy_id}", status_code=204)
async def remove_retention_policy(policy_id: str, service: ServiceDep) -> Response:
    if not service.remove_retention_policy(policy_id):
        raise _not_found(NotFoundError("RetentionPolicy", policy_id))
    return Response(status_code=204)


@router.post("/retention/enforce", response_model=RetentionResultResponse)
async def enforce_data_retention(
    service: ServiceDep,
    request: RetentionEnforceRequest | None = None,
) -> RetentionResultResponse:
    tenant_id = request.tenant_id if request is not None else None
    logger.info("POST /compliance/retention/enforce", tenant_id=tenant_id)
    result = await service.enforce_data_retention(tenant_id)
    return RetentionResultResponse.from_domain(result)


# ---------------------------------------------------------------------------
# Reports and metrics
# ---------------------------------------------------------------------------


@router.post("/reports", response_model=ReportResponse)
async def generate_compliance_report(request: ReportRequest, service: ServiceDep) -> ReportResponse:
    """Generate a compliance report for one compliance type over a period.

    Raises:
        HTTPException 422: If the period ends before it starts.
    """
    if _as_utc(request.end) < _as_utc(request.start):
        raise HTTPException(status_code=422, detail="Report period end precedes its start")
    report = service.generate_compliance_report(
        request.type,
        ReportPeriod(start=_as_utc(request.start), end=_as_utc(request.end)),
        tenant_id=request.tenant_id,
        generated_by=request.generated_by,
    )
    return ReportResponse.from_domain(report)


@router.get("/metrics", response_model=MetricsResponse)
async def get_metrics(service: ServiceDep) -> MetricsResponse:
    return MetricsResponse(**service.get_metrics())
