"""Action executor - runs a violated rule's responses.

Each response is executed independently. A response that raises is caught,
logged with the violation id and response type, and does not stop the
remaining responses or the evaluation of other rules.

Dispatch:
- log                          - informational log record
- alert                        - ``compliance_alert`` event (severity param, default medium)
- block                        - ``compliance_block`` event (reason param)
- custom                       - the response callback (sync or async)
- encrypt/anonymize/delete/notify - hints only; recorded at debug level, the
  surrounding application owns the actual side effect
"""

import inspect

from aumos_compliance_engine.core.interfaces import (
    EVENT_COMPLIANCE_ALERT,
    EVENT_COMPLIANCE_BLOCK,
    IEventSink,
)
from aumos_compliance_engine.core.models import ComplianceResponse, ComplianceViolation
from aumos_compliance_engine.observability import get_logger

logger = get_logger(__name__)

_DEFAULT_ALERT_SEVERITY = "medium"
_HINT_RESPONSES = frozenset({"encrypt", "anonymize", "delete", "notify"})


class ActionExecutor:
    """Dispatches compliance responses for a violation.

    Args:
        event_sink: Receiver of alert and block signals.
    """

    def __init__(self, event_sink: IEventSink) -> None:
        self._event_sink = event_sink

    async def execute(
        self,
        responses: list[ComplianceResponse],
        violation: ComplianceViolation,
    ) -> list[str]:
        """Execute every response for one violation.

        Args:
            responses: The violated rule's responses, in order.
            violation: The violation that triggered them.

        Returns:
            Error messages of responses that failed (empty when all succeeded).
        """
        errors: list[str] = []
        for response in responses:
            try:
                await self._execute_one(response, violation)
            except Exception as exc:
                errors.append(f"{response.type}: {exc}")
                logger.error(
                    "Failed to execute compliance action",
                    error=str(exc),
                    action_type=response.type,
                    violation_id=violation.id,
                    rule_id=violation.rule_id,
                )
        return errors

    async def _execute_one(
        self,
        response: ComplianceResponse,
        violation: ComplianceViolation,
    ) -> None:
        if response.type == "log":
            logger.info(
                "Compliance violation logged",
                violation_id=violation.id,
                rule_id=violation.rule_id,
                severity=violation.severity,
                level=response.parameters.get("level", "info"),
            )
        elif response.type == "alert":
            self._event_sink.emit(
                EVENT_COMPLIANCE_ALERT,
                {
                    "violation": violation,
                    "severity": response.parameters.get("severity", _DEFAULT_ALERT_SEVERITY),
                },
            )
        elif response.type == "block":
            self._event_sink.emit(
                EVENT_COMPLIANCE_BLOCK,
                {
                    "violation": violation,
                    "reason": response.parameters.get("reason"),
                },
            )
        elif response.type == "custom":
            if response.callback is not None:
                outcome = response.callback(violation)
                if inspect.isawaitable(outcome):
                    await outcome
        elif response.type in _HINT_RESPONSES:
            logger.debug(
                "Compliance response hint recorded",
                response_type=response.type,
                violation_id=violation.id,
                parameters=dict(response.parameters),
            )
