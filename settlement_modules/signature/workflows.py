"""Signature record workflow.

A record moves ``pending -> signed`` once.  Supersession is not a status:
a newer record for the same role sets ``superseded_by_id`` on the older one.
"""

from settlement_kernel.domain.workflow import Guard, Transition, Workflow

OTP_VALID = Guard("otp_valid", "Code matches, is unexpired and unused")

SIGNATURE_WORKFLOW = Workflow(
    name="lease_signature",
    description="Per-role OTP signature",
    initial_state="pending",
    states=("pending", "signed"),
    transitions=(
        Transition("pending", "signed", action="verify_otp", guard=OTP_VALID),
    ),
    terminal_states=("signed",),
)
