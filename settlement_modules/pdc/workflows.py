"""Post-dated check workflow: ``received -> cleared | bounced``."""

from settlement_kernel.domain.workflow import Transition, Workflow

PDC_WORKFLOW = Workflow(
    name="post_dated_check",
    description="Post-dated check lifecycle",
    initial_state="received",
    states=("received", "cleared", "bounced"),
    transitions=(
        Transition("received", "cleared", action="clear"),
        Transition("received", "bounced", action="bounce"),
    ),
    terminal_states=("cleared", "bounced"),
)
