"""Lease Agreement Workflows.

State machine for the lease lifecycle.  The signature state machine drives
``draft -> pending_signature -> active``; the external lifecycle scheduler
drives the terminal transitions.
"""

from settlement_kernel.domain.workflow import Guard, Transition, Workflow

BOTH_PARTIES_SIGNED = Guard("both_parties_signed", "Landlord and tenant signatures are signed")
END_DATE_REACHED = Guard("end_date_reached", "Lease end date has passed")


LEASE_LIFECYCLE_WORKFLOW = Workflow(
    name="lease_agreement",
    description="Lease agreement lifecycle",
    initial_state="draft",
    states=(
        "draft",
        "pending_signature",
        "active",
        "expired",
        "completed",
        "cancelled",
    ),
    transitions=(
        Transition("draft", "pending_signature", action="request_signature"),
        Transition("pending_signature", "active", action="activate", guard=BOTH_PARTIES_SIGNED),
        Transition("draft", "cancelled", action="cancel"),
        Transition("pending_signature", "cancelled", action="cancel"),
        Transition("active", "cancelled", action="terminate"),
        Transition("active", "expired", action="expire", guard=END_DATE_REACHED),
        Transition("active", "completed", action="complete"),
        Transition("expired", "completed", action="complete"),
    ),
    terminal_states=("completed", "cancelled"),
)

# Target statuses the external lifecycle scheduler may request.
LIFECYCLE_TARGETS = ("expired", "completed", "cancelled")
