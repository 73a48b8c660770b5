"""
MembershipLifecycle: member status transitions and the exit saga.

    active --leave/remove--> forbidden --restore--> active
    forbidden --hard_delete--> (gone, account included)

Leaving or being removed runs as a saga of named steps:

    resolve_owner
    reassign:<collection>    one per registered collection
    delete_grants
    delete_memberships
    flip_status

Each step commits on its own and is recorded in ``member_exit_journal``.
Every step before ``flip_status`` is idempotent, so an interrupted run can be
invoked again. A resumed run walks every step from the start: the owner is
resolved afresh and rows the member created since the failure are picked up.
The journal keeps progress and running counts.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select, delete, update, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from teamaccess.core import config
from teamaccess.core.errors import (
    AccessControlError,
    ConflictError,
    PartialFailureError,
    ValidationError,
)
from teamaccess.features.groups.models import group_memberships
from teamaccess.features.groups.service import GroupService
from teamaccess.features.orgs.models import org_memberships
from teamaccess.features.orgs.service import OrgTree
from teamaccess.features.permissions.ledger import PermissionLedger
from teamaccess.features.permissions.principals import Principal
from teamaccess.features.resources.registry import ResourceOwnerRegistry, default_registry
from teamaccess.features.teams.models import (
    ExitKind,
    ExitStatus,
    MemberExitJournal,
    TeamMember,
    TeamMemberRole,
    TeamMemberStatus,
)
from teamaccess.features.teams.service import TeamAggregateRoot
from teamaccess.features.users.models import User
from teamaccess.utils import get_logger


log = get_logger(__name__)

STEP_RESOLVE_OWNER = "resolve_owner"
STEP_DELETE_GRANTS = "delete_grants"
STEP_DELETE_MEMBERSHIPS = "delete_memberships"
STEP_FLIP_STATUS = "flip_status"
REASSIGN_STEP_PREFIX = "reassign:"


@dataclass
class ExitResult:
    member_id: str
    owner_member_id: str
    counts: Dict[str, int] = field(default_factory=dict)
    resumed: bool = False

    @property
    def reassigned(self) -> int:
        return sum(
            count for step, count in self.counts.items() if step.startswith(REASSIGN_STEP_PREFIX)
        )


class MembershipLifecycle:
    def __init__(
        self,
        db: AsyncSession,
        registry: Optional[ResourceOwnerRegistry] = None,
        step_attempts: Optional[int] = None
    ):
        self.db = db
        self.registry = registry if registry is not None else default_registry()
        self.step_attempts = max(1, step_attempts or config.EXIT_STEP_ATTEMPTS)
        self.teams = TeamAggregateRoot(db)
        self.ledger = PermissionLedger(db)
        self.org_tree = OrgTree(db)
        self.groups = GroupService(db)

    def step_names(self) -> List[str]:
        return (
            [STEP_RESOLVE_OWNER]
            + [f"{REASSIGN_STEP_PREFIX}{name}" for name in self.registry.names]
            + [STEP_DELETE_GRANTS, STEP_DELETE_MEMBERSHIPS, STEP_FLIP_STATUS]
        )

    # ------------------------------------------------------------------
    # Exit
    # ------------------------------------------------------------------

    async def leave(self, team_id: str, member_id: str) -> ExitResult:
        """The member exits the team voluntarily."""
        return await self._exit(team_id, member_id, ExitKind.LEAVE)

    async def remove(self, team_id: str, member_id: str, actor_member_id: Optional[str] = None) -> ExitResult:
        """A manager removes ``member_id`` from the team."""
        if actor_member_id is not None and actor_member_id == member_id:
            raise ValidationError("Use leave to exit the team yourself")
        return await self._exit(team_id, member_id, ExitKind.REMOVE)

    async def _exit(self, team_id: str, member_id: str, kind: ExitKind) -> ExitResult:
        """
        Run (or resume) the exit saga for one member.

        Raises:
            NotFoundError: unknown member, or the team has no owner
            ConflictError: member is the owner or is not active
            PartialFailureError: a step kept failing; safe to call again
        """
        member = await self.teams.get_member(team_id, member_id)
        if member.role == TeamMemberRole.OWNER:
            raise ConflictError("The team owner cannot leave; transfer ownership first")
        if not member.is_active:
            raise ConflictError("Member is not active")

        journal = await self._open_journal(team_id, member_id, kind)
        resumed = bool(journal.completed_steps)
        if resumed:
            log.info(f"Resuming {kind.value} for member {member_id} after {journal.completed_steps[-1]}")
        else:
            log.info(f"Starting {kind.value} for member {member_id} in team {team_id}")

        owner_id: Optional[str] = None

        async def resolve_owner() -> int:
            nonlocal owner_id
            owner = await self.teams.get_owner(team_id)
            owner_id = owner.id
            journal.target_owner_id = owner.id
            return 1

        steps: List[tuple] = [(STEP_RESOLVE_OWNER, resolve_owner)]
        for collection in self.registry:
            steps.append((
                f"{REASSIGN_STEP_PREFIX}{collection.name}",
                self._reassign_step(collection, team_id, member_id, lambda: owner_id),
            ))
        steps.append((
            STEP_DELETE_GRANTS,
            lambda: self.ledger.delete_grants_for_principal(Principal.member(member_id), team_id=team_id),
        ))
        steps.append((STEP_DELETE_MEMBERSHIPS, lambda: self._delete_memberships(member_id)))
        steps.append((STEP_FLIP_STATUS, lambda: self._flip_status(team_id, member_id, journal)))

        for step, action in steps:
            await self._run_step(journal, step, action)

        log.info(f"Member {member_id} exited team {team_id}; resources moved to {owner_id}")
        return ExitResult(
            member_id=member_id,
            owner_member_id=owner_id,
            counts=dict(journal.counts),
            resumed=resumed,
        )

    def _reassign_step(self, collection, team_id: str, member_id: str, owner_id: Callable[[], str]):
        async def reassign() -> int:
            return await collection.reassign_owner(self.db, team_id, member_id, owner_id())
        return reassign

    async def _open_journal(self, team_id: str, member_id: str, kind: ExitKind) -> MemberExitJournal:
        """Latest unfinished journal for the member, or a new one. Committed before any step runs."""
        result = await self.db.execute(
            select(MemberExitJournal)
            .where(
                and_(
                    MemberExitJournal.member_id == member_id,
                    MemberExitJournal.status != ExitStatus.COMPLETED
                )
            )
            .order_by(MemberExitJournal.created_at.desc(), MemberExitJournal.id.desc())
            .limit(1)
        )
        journal = result.scalar_one_or_none()
        if journal is None:
            journal = MemberExitJournal(
                team_id=team_id,
                member_id=member_id,
                kind=kind,
                status=ExitStatus.RUNNING,
                completed_steps=[],
                counts={},
            )
            self.db.add(journal)
        else:
            journal.status = ExitStatus.RUNNING
            journal.failed_step = None
            journal.last_error = None
        await self.db.commit()
        return journal

    async def _run_step(
        self,
        journal: MemberExitJournal,
        step: str,
        action: Callable[[], Awaitable[int]]
    ) -> None:
        last_error: Optional[Exception] = None
        for attempt in range(1, self.step_attempts + 1):
            try:
                count = int(await action() or 0)
                if step not in (STEP_RESOLVE_OWNER, STEP_FLIP_STATUS):
                    # Re-runs on resume add to what earlier runs moved or deleted
                    count += journal.counts.get(step, 0)
                # Reassign whole values; JSON columns do not track in-place changes
                if step not in journal.completed_steps:
                    journal.completed_steps = [*journal.completed_steps, step]
                journal.counts = {**journal.counts, step: count}
                await self.db.commit()
                log.debug(f"Exit step {step} for member {journal.member_id} done ({count})")
                return
            except AccessControlError as e:
                await self._rollback()
                await self._mark_failed(journal, step, e)
                raise
            except Exception as e:
                last_error = e
                await self._rollback()
                await self.db.refresh(journal)
                log.error(
                    f"Exit step {step} for member {journal.member_id} failed "
                    f"(attempt {attempt}/{self.step_attempts}): {e}"
                )

        await self._mark_failed(journal, step, last_error)
        if step == STEP_FLIP_STATUS:
            await self._restore_active(journal.member_id)

        raise PartialFailureError(
            f"Member exit interrupted at step {step}",
            step=step,
            retry_safe=True,
            completed=dict(journal.counts),
        ) from last_error

    async def _mark_failed(self, journal: MemberExitJournal, step: str, error: Optional[Exception]) -> None:
        try:
            await self.db.refresh(journal)
            journal.status = ExitStatus.FAILED
            journal.failed_step = step
            journal.last_error = str(error) if error else None
            await self.db.commit()
        except Exception as e:
            log.error(f"Could not record failed exit step {step} for member {journal.member_id}: {e}")
            await self._rollback()

    async def _rollback(self) -> None:
        try:
            await self.db.rollback()
        except Exception as e:
            log.error(f"Rollback failed: {e}")

    async def _delete_memberships(self, member_id: str) -> int:
        groups = await self.groups.delete_memberships_for_member(member_id)
        orgs = await self.org_tree.delete_memberships_for_member(member_id)
        return groups + orgs

    async def _flip_status(self, team_id: str, member_id: str, journal: MemberExitJournal) -> int:
        result = await self.db.execute(
            update(TeamMember)
            .where(
                and_(
                    TeamMember.id == member_id,
                    TeamMember.team_id == team_id,
                    TeamMember.status == TeamMemberStatus.ACTIVE
                )
            )
            .values(status=TeamMemberStatus.FORBIDDEN)
        )
        if result.rowcount != 1:
            raise ConflictError("Member is no longer active")

        journal.status = ExitStatus.COMPLETED
        journal.finished_at = datetime.now(timezone.utc)
        return 1

    async def _restore_active(self, member_id: str) -> None:
        """Put the member back to active after a failed status flip. Logged, never raised."""
        try:
            await self.db.execute(
                update(TeamMember)
                .where(TeamMember.id == member_id)
                .values(status=TeamMemberStatus.ACTIVE)
            )
            await self.db.commit()
            log.warning(f"Restored member {member_id} to active after failed exit")
        except Exception as e:
            log.error(f"Could not restore member {member_id} to active: {e}")
            await self._rollback()

    # ------------------------------------------------------------------
    # Restore / hard delete
    # ------------------------------------------------------------------

    async def restore(self, team_id: str, member_id: str) -> TeamMember:
        """forbidden -> active. Memberships and grants removed on exit are not brought back."""
        member = await self.teams.get_member(team_id, member_id)
        if member.is_active:
            raise ConflictError("Member is already active")

        member.status = TeamMemberStatus.ACTIVE
        await self.db.flush()

        log.info(f"Restored member {member_id} in team {team_id}")
        return member

    async def hard_delete(self, team_id: str, member_id: str, actor_member_id: str) -> None:
        """
        Delete a forbidden member and its user account for good.

        The account row is kept when the user still belongs to another team.

        Raises:
            ValidationError: actor tries to delete itself
            ConflictError: member is the owner or still active
        """
        if actor_member_id == member_id:
            raise ValidationError("You cannot delete yourself")

        member = await self.teams.get_member(team_id, member_id)
        if member.role == TeamMemberRole.OWNER:
            raise ConflictError("The team owner cannot be deleted")
        if member.is_active:
            raise ConflictError("Only removed members can be deleted; remove the member first")

        user_id = member.user_id

        await self.ledger.delete_grants_for_principal(Principal.member(member_id))
        await self.db.execute(delete(group_memberships).where(group_memberships.c.member_id == member_id))
        await self.db.execute(delete(org_memberships).where(org_memberships.c.member_id == member_id))
        await self.db.execute(delete(MemberExitJournal).where(MemberExitJournal.member_id == member_id))
        await self.db.delete(member)
        await self.db.flush()

        others = await self.db.execute(select(func.count()).select_from(TeamMember).where(TeamMember.user_id == user_id))
        if others.scalar_one() == 0:
            await self.db.execute(delete(User).where(User.id == user_id))
            log.info(f"Deleted member {member_id} and user account {user_id}")
        else:
            log.info(f"Deleted member {member_id}; user {user_id} still belongs to other teams")
