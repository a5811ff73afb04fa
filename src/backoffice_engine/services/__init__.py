"""Back-office engine services."""

from backoffice_engine.services.access_resolver import AccessResolver, Actor, BusinessScope
from backoffice_engine.services.approval_rules import ApprovalRuleEngine, ApprovalRuleService
from backoffice_engine.services.audit_service import AuditRecorder
from backoffice_engine.services.batch_service import BatchProcessor, BatchResult
from backoffice_engine.services.customer_service import CustomerService
from backoffice_engine.services.grant_service import GrantService
from backoffice_engine.services.payment_service import PaymentService
from backoffice_engine.services.state_machine import PaymentStateMachine
from backoffice_engine.services.task_service import TaskService
from backoffice_engine.services.workflow_service import WorkflowService

__all__ = [
    "AccessResolver",
    "Actor",
    "ApprovalRuleEngine",
    "ApprovalRuleService",
    "AuditRecorder",
    "BatchProcessor",
    "BatchResult",
    "BusinessScope",
    "CustomerService",
    "GrantService",
    "PaymentService",
    "PaymentStateMachine",
    "TaskService",
    "WorkflowService",
]
