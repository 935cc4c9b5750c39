"""Billing statement workflow."""

from settlement_kernel.domain.workflow import Guard, Transition, Workflow

BALANCE_SETTLED = Guard("balance_settled", "Payments cover the total amount due")
DUE_DATE_PASSED = Guard("due_date_passed", "Statement due date is before the sweep date")


STATEMENT_WORKFLOW = Workflow(
    name="billing_statement",
    description="Billing statement lifecycle",
    initial_state="draft",
    states=("draft", "unpaid", "paid", "overdue"),
    transitions=(
        Transition("draft", "unpaid", action="issue"),
        Transition("unpaid", "paid", action="settle", guard=BALANCE_SETTLED),
        Transition("unpaid", "overdue", action="mark_overdue", guard=DUE_DATE_PASSED),
        Transition("overdue", "paid", action="settle", guard=BALANCE_SETTLED),
    ),
    terminal_states=("paid",),
)
