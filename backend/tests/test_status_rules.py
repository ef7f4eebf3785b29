import unittest

from app.services import permission_service, workflow_service
from app.services.workflow_service import WorkflowError


class StatusRuleTests(unittest.TestCase):
    def test_forward_transitions_only(self):
        self.assertTrue(workflow_service.can_transition("DRAFT", "SUBMITTED"))
        self.assertTrue(workflow_service.can_transition("OPS_APPROVED", "SUPPLIER_REJECTED"))
        self.assertTrue(workflow_service.can_transition("PENDING_FINANCIAL_APPROVAL", "ACTIVE"))
        self.assertFalse(workflow_service.can_transition("SUBMITTED", "DRAFT"))
        self.assertFalse(workflow_service.can_transition("DRAFT", "ACTIVE"))
        self.assertFalse(workflow_service.can_transition("ACTIVE", "ACTIVE"))

    def test_unknown_status_raises(self):
        with self.assertRaises(WorkflowError):
            workflow_service.can_transition("DRAFT", "ARCHIVED")

    def test_required_status_for(self):
        self.assertEqual(workflow_service.required_status_for("submit"), "DRAFT")
        self.assertEqual(workflow_service.required_status_for("ops_approve"), "SUBMITTED")
        self.assertEqual(workflow_service.required_status_for("supplier_reject"), "OPS_APPROVED")
        self.assertEqual(
            workflow_service.required_status_for("financial_approve"),
            "PENDING_FINANCIAL_APPROVAL",
        )
        with self.assertRaises(WorkflowError):
            workflow_service.required_status_for("archive")

    def test_terminal_statuses(self):
        for status in ("ACTIVE", "SUPPLIER_REJECTED", "FINANCIALLY_REJECTED"):
            self.assertTrue(workflow_service.is_terminal(status))
        self.assertFalse(workflow_service.is_terminal("DRAFT"))


class RoleRuleTests(unittest.TestCase):
    def test_each_gate_has_one_role(self):
        for operation in workflow_service.OPERATIONS:
            roles = [
                role for role in permission_service.ROLE_OPERATIONS
                if permission_service.role_allows(role, operation)
            ]
            self.assertEqual(len(roles), 1, operation)

    def test_available_actions(self):
        self.assertEqual(permission_service.available_actions("DRAFT", "HIRING_MANAGER"), ["submit"])
        self.assertEqual(permission_service.available_actions("DRAFT", "OPS_TEAM"), [])
        self.assertEqual(permission_service.available_actions("SUBMITTED", "OPS_TEAM"), ["ops_approve"])
        self.assertEqual(
            permission_service.available_actions("PENDING_FINANCIAL_APPROVAL", "APPROVER"),
            ["financial_approve", "financial_reject"],
        )
        self.assertEqual(permission_service.available_actions("ACTIVE", "APPROVER"), [])

    def test_unknown_role_gets_nothing(self):
        self.assertFalse(permission_service.role_allows("ADMIN", "submit"))


if __name__ == "__main__":
    unittest.main()
