#
# For licensing see accompanying LICENSE file.
# Copyright © 2025 Apple Inc. All Rights Reserved.
#
import json
import logging
from pathlib import Path

import hydra
import omegaconf
from omegaconf import DictConfig
from rich.console import Console

from cowork.conflicts import pending_with_conflicts
from cowork.display import display_outcome, display_reservations, display_rooms
from cowork.models import Actor, UserRole
from cowork.notifications import InboxNotifier
from cowork.seed import seed_mock_data
from cowork.simulation.execution_context import ExecutionContext, new_context
from cowork.store import ReservationStore
from cowork.workflow import ApprovalWorkflow, WorkflowSettings

logger = logging.getLogger(__name__)


def _get_page_size(cfg: DictConfig, default: int = 10) -> int:
    try:
        return cfg.page_size
    except omegaconf.MissingMandatoryValue:
        return default


def load_state(cfg: DictConfig) -> ExecutionContext:
    """Resume from the state file in `cfg.state.load` if there is one,
    otherwise start afresh, with the demo data if `cfg.seed_mock_data`."""
    if state_file := cfg.state.get("load"):
        logger.info(f"Loading state from {state_file}")
        with open(state_file, "r") as f:
            return ExecutionContext.from_dict(json.load(f))
    context = ExecutionContext()
    if cfg.seed_mock_data:
        seed_mock_data(ReservationStore(context))
    return context


def save_state(context: ExecutionContext, state_file: str | Path):
    state_file = Path(state_file)
    state_file.parent.mkdir(parents=True, exist_ok=True)
    with open(state_file, "w") as f:
        json.dump(context.to_dict(), f, indent=2)
    logger.info(f"Saved state to {state_file}")


def _apply_actions(
    cfg: DictConfig, workflow: ApprovalWorkflow, admin: Actor, console: Console
):
    for reservation_id in cfg.actions.get("approve", []):
        outcome = workflow.approve(reservation_id, actor=admin)
        display_outcome(f"Approve #{reservation_id}", outcome, console=console)
    for reservation_id in cfg.actions.get("reject", []):
        outcome = workflow.reject(reservation_id, actor=admin)
        display_outcome(f"Reject #{reservation_id}", outcome, console=console)
    for extension in cfg.actions.get("extend", []):
        outcome = workflow.extend_by(extension.id, extension.hours)
        display_outcome(
            f"Extend #{extension.id} by {extension.hours}h", outcome, console=console
        )


@hydra.main(
    config_name="review",
    config_path="pkg://cowork.configs.endpoints",
    version_base=None,
)
def review(cfg: DictConfig):
    console = Console()
    with new_context(load_state(cfg)) as context:
        store = ReservationStore()
        notifier = InboxNotifier(store)
        workflow = ApprovalWorkflow(
            store,
            notifier=notifier,
            settings=WorkflowSettings.from_config(cfg.workflow),
        )
        admin = Actor(user_id=cfg.admin_user_id, role=UserRole.admin)
        _apply_actions(cfg, workflow, admin, console)

        rooms = {room.room_id: room for room in store.list_rooms()}
        display_rooms(list(rooms.values()), console=console)
        reservations = sorted(store.list_all(), key=lambda r: r.start_time)
        conflicting = pending_with_conflicts(reservations)
        if conflicting:
            logger.info(f"Pending reservations with conflicts: {sorted(conflicting)}")
        page_size = _get_page_size(cfg)
        for start in range(0, len(reservations), page_size):
            display_reservations(
                reservations[start : start + page_size],
                rooms,
                conflicting=conflicting,
                console=console,
            )
        if state_file := cfg.state.get("save"):
            save_state(context, state_file)


if __name__ == "__main__":
    review()
