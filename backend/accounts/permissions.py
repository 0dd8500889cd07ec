from pricing.services.approval import ApprovalPolicy


class RoleApprovalPolicy(ApprovalPolicy):
    """Approver hook backed by the user's role."""

    def can_approve(self, actor) -> bool:
        return bool(
            actor is not None
            and getattr(actor, 'is_authenticated', False)
            and getattr(actor, 'is_approver', False)
        )
