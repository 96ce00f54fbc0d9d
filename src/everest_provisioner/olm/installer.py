"""Operator install/upgrade state machine.

One install attempt walks these states::

    START -> SUBSCRIPTION_CREATED -> AWAITING_INSTALL_PLAN
          -> INSTALL_PLAN_APPROVED -> AWAITING_COMPLETION -> SUCCEEDED

and lands in FAILED from any state on an error or an expired wait. Each
state has one transition method returning the next state, so a run can be
started from any state (an upgrade starts at SUBSCRIPTION_CREATED) and each
transition can be exercised on its own.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from everest_provisioner.olm.crds import CSV_PHASE_FAILED
from everest_provisioner.olm.models import (
    ClusterServiceVersion,
    InstallOperatorRequest,
    InstallPlan,
    Subscription,
)
from everest_provisioner.utils.errors import (
    CSVFailedError,
    InstallPlanUnresolvedError,
    NotFoundError,
    OperatorInstallError,
    ProvisionerError,
)
from everest_provisioner.utils.polling import POLL_INTERVAL, POLL_TIMEOUT, wait_until

if TYPE_CHECKING:
    from everest_provisioner.connector import Connector

logger = logging.getLogger(__name__)


class InstallState(str, Enum):
    """States of one operator install or upgrade."""

    START = "Start"
    SUBSCRIPTION_CREATED = "SubscriptionCreated"
    AWAITING_INSTALL_PLAN = "AwaitingInstallPlan"
    INSTALL_PLAN_APPROVED = "InstallPlanApproved"
    AWAITING_COMPLETION = "AwaitingCompletion"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    @property
    def terminal(self) -> bool:
        return self in (InstallState.SUCCEEDED, InstallState.FAILED)


@dataclass
class InstallContext:
    """Everything one run of the state machine knows and has done."""

    namespace: str
    name: str
    request: InstallOperatorRequest | None = None
    state: InstallState = InstallState.START
    # Leave already-approved plans alone (upgrade and bootstrap paths)
    skip_approved: bool = False
    wait_for_completion: bool = False
    subscription: Subscription | None = None
    install_plan: InstallPlan | None = None
    csv: ClusterServiceVersion | None = None
    approval_written: bool = False
    history: list[InstallState] = field(default_factory=list)
    error: ProvisionerError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state == InstallState.SUCCEEDED


class OperatorInstaller:
    """Drives OLM subscriptions to an installed operator."""

    def __init__(
        self,
        connector: Connector,
        interval: float = POLL_INTERVAL,
        timeout: float = POLL_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._connector = connector
        self._interval = interval
        self._timeout = timeout
        self._sleep = sleep
        self._transitions: dict[InstallState, Callable[[InstallContext], InstallState]] = {
            InstallState.START: self.create_subscription,
            InstallState.SUBSCRIPTION_CREATED: self.resolve_install_plan,
            InstallState.AWAITING_INSTALL_PLAN: self.approve_install_plan,
            InstallState.INSTALL_PLAN_APPROVED: self.resolve_csv,
            InstallState.AWAITING_COMPLETION: self.await_csv,
        }

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def install(
        self,
        request: InstallOperatorRequest,
        wait_for_completion: bool = False,
    ) -> InstallContext:
        """Install an operator: subscribe with manual approval and approve its plan."""
        logger.info(f"Installing operator {request.name} from channel {request.channel}")
        ctx = InstallContext(
            namespace=request.namespace,
            name=request.name,
            request=request,
            wait_for_completion=wait_for_completion,
        )
        return self.run(ctx)

    def upgrade(self, namespace: str, name: str) -> InstallContext:
        """Approve the pending install plan of an existing subscription.

        Succeeds without writing anything when the plan is already approved,
        i.e. there is no upgrade available.
        """
        logger.info(f"Upgrading operator {name} in {namespace}")
        ctx = InstallContext(
            namespace=namespace,
            name=name,
            state=InstallState.SUBSCRIPTION_CREATED,
            skip_approved=True,
        )
        return self.run(ctx)

    def await_subscription(self, namespace: str, name: str) -> InstallContext:
        """Take an existing subscription through approval to a succeeded CSV."""
        ctx = InstallContext(
            namespace=namespace,
            name=name,
            state=InstallState.SUBSCRIPTION_CREATED,
            skip_approved=True,
            wait_for_completion=True,
        )
        return self.run(ctx)

    def run(self, ctx: InstallContext) -> InstallContext:
        """Advance ``ctx`` until it reaches a terminal state.

        Raises:
            OperatorInstallError: a transition failed; the cause is chained.
        """
        while not ctx.state.terminal:
            current = ctx.state
            ctx.history.append(current)
            try:
                ctx.state = self._transitions[current](ctx)
            except ProvisionerError as e:
                ctx.state = InstallState.FAILED
                ctx.error = e
                logger.error(f"Operator {ctx.name} failed in state {current.value}: {e}")
                raise OperatorInstallError(ctx.name, current.value, str(e)) from e
            logger.debug(f"Operator {ctx.name}: {current.value} -> {ctx.state.value}")
        ctx.history.append(ctx.state)
        return ctx

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    def create_subscription(self, ctx: InstallContext) -> InstallState:
        """START -> SUBSCRIPTION_CREATED."""
        if ctx.request is None:
            raise ProvisionerError(f"no install request for operator '{ctx.name}'")
        self.ensure_operator_group(ctx.request.operator_group, ctx.namespace)
        try:
            ctx.subscription = self._connector.create_subscription(ctx.request)
        except ProvisionerError as e:
            raise ProvisionerError(f"cannot create a subscription to install the operator: {e}") from e
        return InstallState.SUBSCRIPTION_CREATED

    def resolve_install_plan(self, ctx: InstallContext) -> InstallState:
        """SUBSCRIPTION_CREATED -> AWAITING_INSTALL_PLAN, once OLM names a plan."""

        def has_install_plan() -> bool:
            ctx.subscription = self._connector.get_subscription(ctx.namespace, ctx.name)
            return ctx.subscription is not None and bool(ctx.subscription.install_plan_name)

        self._wait(has_install_plan, f"an install plan for subscription/{ctx.name}")
        if ctx.subscription is None or not ctx.subscription.install_plan_name:
            raise InstallPlanUnresolvedError(
                f"cannot resolve install plan for subscription '{ctx.name}'"
            )
        return InstallState.AWAITING_INSTALL_PLAN

    def approve_install_plan(self, ctx: InstallContext) -> InstallState:
        """AWAITING_INSTALL_PLAN -> INSTALL_PLAN_APPROVED."""
        if ctx.subscription is None or not ctx.subscription.install_plan_name:
            raise InstallPlanUnresolvedError(
                f"cannot resolve install plan for subscription '{ctx.name}'"
            )
        plan_name = ctx.subscription.install_plan_name
        try:
            plan = self._connector.get_install_plan(ctx.namespace, plan_name)
        except ProvisionerError as e:
            raise ProvisionerError(f"cannot get install plan '{plan_name}': {e}") from e
        ctx.install_plan = plan

        if plan.approved and ctx.skip_approved:
            logger.info(f"Install plan {plan_name} is already approved, nothing to upgrade")
            return InstallState.INSTALL_PLAN_APPROVED

        ctx.install_plan = self._connector.update_install_plan(ctx.namespace, plan)
        ctx.approval_written = True
        return InstallState.INSTALL_PLAN_APPROVED

    def resolve_csv(self, ctx: InstallContext) -> InstallState:
        """INSTALL_PLAN_APPROVED -> AWAITING_COMPLETION, or SUCCEEDED without a completion wait."""
        if not ctx.wait_for_completion:
            return InstallState.SUCCEEDED

        logger.info(f"Waiting for subscription/{ctx.name} to install CSV")

        def has_installed_csv() -> bool:
            ctx.subscription = self._connector.get_subscription(ctx.namespace, ctx.name)
            return ctx.subscription is not None and bool(ctx.subscription.installed_csv)

        self._wait(has_installed_csv, f"subscription/{ctx.name} to install a CSV")
        return InstallState.AWAITING_COMPLETION

    def await_csv(self, ctx: InstallContext) -> InstallState:
        """AWAITING_COMPLETION -> SUCCEEDED once the CSV phase is Succeeded."""
        if ctx.subscription is None or not ctx.subscription.installed_csv:
            raise ProvisionerError(f"subscription '{ctx.name}' has no installed CSV")
        csv_name = ctx.subscription.installed_csv
        logger.info(f"Waiting for clusterserviceversion/{csv_name} to reach 'Succeeded' phase")

        def csv_succeeded() -> bool:
            try:
                ctx.csv = self._connector.get_cluster_service_version(ctx.namespace, csv_name)
            except NotFoundError:
                return False
            if ctx.csv.phase == CSV_PHASE_FAILED:
                raise CSVFailedError(csv_name, ctx.namespace, ctx.csv.phase)
            return ctx.csv.succeeded

        self._wait(csv_succeeded, f"clusterserviceversion/{csv_name} to reach 'Succeeded' phase")
        return InstallState.SUCCEEDED

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def ensure_operator_group(self, name: str, namespace: str) -> None:
        """Create the operator group unless it exists."""
        try:
            self._connector.get_operator_group(name, namespace)
            logger.debug(f"Operator group {name} already exists in {namespace}")
            return
        except NotFoundError:
            pass
        self._connector.create_operator_group(name, namespace)

    def _wait(self, condition: Callable[[], bool], what: str) -> None:
        wait_until(
            condition,
            interval=self._interval,
            timeout=self._timeout,
            what=what,
            sleep=self._sleep,
        )
