"""
Restart handling — reboots and service restarts left behind by actions.

Needs are accumulated during a run and surfaced once, after the result
is reported. Service restarts come first; a reboot is always last and
is never performed without an explicit yes.
"""

from __future__ import annotations

import logging

from hostctl.adapters.registry import AdapterRegistry
from hostctl.core.engine.confirm import REBOOT, SERVICE_RESTART, Confirmer
from hostctl.core.models.action import Action, Receipt, RestartNeeds
from hostctl.core.models.host import HostContext

logger = logging.getLogger(__name__)


def restart_notifications(needs: RestartNeeds, host: HostContext) -> list[str]:
    """Human-readable reminders for needs that were not applied."""
    messages: list[str] = []
    for svc in needs.service_restart:
        if host.systemd:
            messages.append(f"Restart {svc} to apply changes: systemctl restart {svc}")
        else:
            messages.append(f"Restart {svc} manually to apply changes (systemd not detected)")
    if needs.reboot_required:
        messages.append("A system reboot is required for changes to take effect")
    return messages


def apply_restart_needs(
    needs: RestartNeeds,
    confirmer: Confirmer,
    registry: AdapterRegistry,
    host: HostContext,
    dry_run: bool = False,
    timeout: int = 300,
) -> tuple[list[Receipt], RestartNeeds]:
    """Ask about each pending restart and perform the accepted ones.

    Returns:
        (receipts of performed restarts, needs still outstanding).
    """
    receipts: list[Receipt] = []
    pending = RestartNeeds(reasons=list(needs.reasons))

    for svc in needs.service_restart:
        if host.systemd and confirmer.confirm(
            f"Restart {svc} now to apply changes?", SERVICE_RESTART
        ):
            receipt = registry.execute_action(
                Action(
                    id=f"restart:{svc}",
                    name=f"Restart {svc}",
                    adapter="shell",
                    params={"argv": ["systemctl", "restart", svc]},
                ),
                dry_run=dry_run,
                timeout=timeout,
            )
            receipts.append(receipt)
            if not receipt.failed:
                continue
            logger.warning("Restart of %s failed: %s", svc, receipt.error)
        pending.service_restart.append(svc)

    if needs.reboot_required:
        if confirmer.confirm("A reboot is required to apply changes. Reboot now?", REBOOT):
            receipts.append(registry.execute_action(
                Action(id="reboot", name="Reboot", adapter="shell", params={"argv": ["reboot"]}),
                dry_run=dry_run,
                timeout=timeout,
            ))
        else:
            pending.reboot_required = True

    return receipts, pending
