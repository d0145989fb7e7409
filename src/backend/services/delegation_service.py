"""
Delegation manager.

Keeps the delegation graph acyclic. Every forward edge lives on
RightToVote.delegated_to_id (anonymous), the identity level counterpart is a
Delegation row. A delegation to a proxy who is not a public proxy is only a
request until the proxy accepts it.

All checks run before any mutation. Mutations take the delegation graph lock
before their first read, so concurrent delegations are serialized.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog

from core.config import settings
from core.exceptions import (
    CircularDelegationError,
    DataInconsistencyError,
    NoDelegationError,
    SelfDelegationError,
)
from models.delegation import Delegation
from models.right_to_vote import RightToVote
from repositories.provider import RepositoryProviderProtocol
from schemas.identity import Identity
from services.right_to_vote_service import RightToVoteService

logger = structlog.get_logger(__name__)


class DelegationService:
    """Service for delegations between voters and proxies."""

    def __init__(self, repos: RepositoryProviderProtocol, right_to_votes: RightToVoteService):
        self.repos = repos
        self.right_to_votes = right_to_votes

    async def would_cause_cycle(self, voter: RightToVote, proxy: RightToVote) -> bool:
        """
        Check if delegating voter -> proxy would close a cycle.

        Walks from the proxy along delegated_to edges. The walk ends at a
        right to vote without proxy, because the graph is acyclic.
        """
        current: Optional[RightToVote] = proxy
        steps = 0
        while current is not None:
            if current.id == voter.id:
                return True
            if current.delegated_to_id is None:
                return False
            steps += 1
            if steps > settings.MAX_DELEGATION_CHAIN_LENGTH:
                logger.error("delegation_chain_too_long", max_length=settings.MAX_DELEGATION_CHAIN_LENGTH)
                raise DataInconsistencyError("Delegation chain exceeds its maximum length.")
            current = await self.repos.right_to_votes.get_by_id(current.delegated_to_id)
        logger.error("delegation_target_missing")
        raise DataInconsistencyError("Right to vote references a missing proxy.")

    async def delegate_to(self, identity: Identity, proxy: Identity) -> Delegation:
        """
        Delegate the identity's right to vote to a proxy.

        A public proxy gets the delegation immediately. Any other proxy gets a
        delegation request and must accept it. Until then the voter votes for
        themselves, a previously active delegation is removed.

        Raises:
            NotEligibleError: voter or proxy has no valid right to vote
            SelfDelegationError: proxy is the voter
            CircularDelegationError: the proxy (transitively) delegates to the voter
        """
        # Lock before the first read, so the cycle check sees every committed edge
        await self.repos.lock_delegation_graph()

        voter_rtv = await self.right_to_votes.get_valid(identity)
        proxy_rtv = await self.right_to_votes.get_valid(proxy)

        if proxy.id == identity.id or proxy_rtv.id == voter_rtv.id:
            raise SelfDelegationError("You cannot delegate to yourself.")

        if await self.would_cause_cycle(voter_rtv, proxy_rtv):
            raise CircularDelegationError(
                "Delegation to this proxy would cause a circle. This proxy or one of "
                "their proxies already delegates to you.",
                {"proxy_id": proxy.id},
            )

        delegation = await self.repos.delegations.get_by_from_user(identity.id)

        if (
            delegation is not None
            and delegation.to_proxy_id == proxy.id
            and not delegation.is_delegation_request
            and voter_rtv.delegated_to_id == proxy_rtv.id
        ):
            return delegation

        if proxy_rtv.is_public_proxy:
            await self.right_to_votes.set_delegation(voter_rtv, proxy_rtv)
            delegation = await self._upsert_delegation(delegation, identity.id, proxy.id, None, None)
            logger.info("delegation_created", from_user_id=identity.id, to_proxy_id=proxy.id)
            return delegation

        if voter_rtv.delegated_to_id is not None:
            await self.right_to_votes.clear_delegation(voter_rtv)
        delegation = await self._upsert_delegation(
            delegation, identity.id, proxy.id, voter_rtv.id, datetime.now(timezone.utc)
        )
        logger.info("delegation_requested", from_user_id=identity.id, to_proxy_id=proxy.id)
        return delegation

    async def _upsert_delegation(
        self,
        delegation: Optional[Delegation],
        from_user_id: str,
        to_proxy_id: str,
        requested_from_id: Optional[str],
        requested_at: Optional[datetime],
    ) -> Delegation:
        if delegation is None:
            return await self.repos.delegations.create(
                from_user_id,
                to_proxy_id,
                requested_delegation_from_id=requested_from_id,
                requested_delegation_at=requested_at,
            )
        delegation.to_proxy_id = to_proxy_id
        delegation.requested_delegation_from_id = requested_from_id
        delegation.requested_delegation_at = requested_at
        await self.repos.delegations.save(delegation)
        return delegation

    async def remove_delegation(self, identity: Identity) -> None:
        """Remove the identity's delegation (or pending request). No-op if there is none."""
        await self.repos.lock_delegation_graph()
        voter_rtv = await self.right_to_votes.get_valid(identity)
        delegation = await self.repos.delegations.get_by_from_user(identity.id)
        if voter_rtv.delegated_to_id is None and delegation is None:
            return

        if voter_rtv.delegated_to_id is not None:
            await self.right_to_votes.clear_delegation(voter_rtv)
        if delegation is not None:
            await self.repos.delegations.delete(delegation)
        # Never log the former proxy here
        logger.info("delegation_removed", from_user_id=identity.id)

    async def accept_delegation_requests(
        self,
        proxy: Identity,
        delegation_ids: Optional[list[str]] = None,
    ) -> list[Delegation]:
        """
        Accept pending delegation requests addressed to the proxy.

        Without delegation_ids all pending requests are accepted. Every request
        is checked before any of them is activated. A request that would close
        a cycle fails the whole call.

        Raises:
            NotEligibleError: proxy has no valid right to vote
            NoDelegationError: an id is not a pending request to this proxy
            CircularDelegationError: accepting a request would close a cycle
        """
        await self.repos.lock_delegation_graph()
        proxy_rtv = await self.right_to_votes.get_valid(proxy)
        accepted, _skipped = await self._accept_requests(proxy, proxy_rtv, delegation_ids, skip_circular=False)
        return accepted

    async def _accept_requests(
        self,
        proxy: Identity,
        proxy_rtv: RightToVote,
        delegation_ids: Optional[list[str]],
        skip_circular: bool,
    ) -> tuple[list[Delegation], list[Delegation]]:
        pending = await self.repos.delegations.list_requests_for_proxy(proxy.id)
        if delegation_ids is not None:
            by_id = {d.id: d for d in pending}
            missing = [d_id for d_id in delegation_ids if d_id not in by_id]
            if missing:
                raise NoDelegationError(
                    "There is no pending delegation request with this id for you.",
                    {"delegation_ids": missing},
                )
            pending = [by_id[d_id] for d_id in dict.fromkeys(delegation_ids)]

        to_accept: list[tuple[Delegation, RightToVote]] = []
        skipped: list[Delegation] = []
        for delegation in pending:
            requester_rtv = await self.repos.right_to_votes.get_by_id(delegation.requested_delegation_from_id)
            if requester_rtv is None:
                logger.error("delegation_request_without_right_to_vote", delegation_id=delegation.id)
                raise DataInconsistencyError(
                    "Delegation request references a missing right to vote.",
                    {"delegation_id": delegation.id},
                )
            if await self.would_cause_cycle(requester_rtv, proxy_rtv):
                if skip_circular:
                    skipped.append(delegation)
                    continue
                raise CircularDelegationError(
                    "Accepting this delegation request would cause a circle.",
                    {"delegation_id": delegation.id},
                )
            to_accept.append((delegation, requester_rtv))

        for delegation, requester_rtv in to_accept:
            await self.right_to_votes.set_delegation(requester_rtv, proxy_rtv)
            delegation.requested_delegation_from_id = None
            delegation.requested_delegation_at = None
            await self.repos.delegations.save(delegation)

        if to_accept:
            logger.info("delegation_requests_accepted", proxy_id=proxy.id, count=len(to_accept))
        if skipped:
            logger.warning("delegation_requests_left_pending", proxy_id=proxy.id, count=len(skipped))
        return [d for d, _ in to_accept], skipped

    async def get_delegation_requests(self, proxy: Identity) -> list[Delegation]:
        return await self.repos.delegations.list_requests_for_proxy(proxy.id)

    async def get_proxy(self, identity: Identity) -> Optional[Delegation]:
        """The identity's delegation, pending or active, if any."""
        return await self.repos.delegations.get_by_from_user(identity.id)

    async def count_delegations(self, proxy: Identity) -> int:
        """Number of active delegations to the proxy's right to vote."""
        proxy_rtv = await self.right_to_votes.get_valid(proxy)
        return await self.repos.right_to_votes.count_delegated_to(proxy_rtv.id)

    async def become_public_proxy(self, identity: Identity) -> RightToVote:
        """
        Link the identity to its right to vote so that delegations are accepted automatically.

        All pending requests are accepted, except those that would close a
        cycle. They stay pending.
        """
        await self.repos.lock_delegation_graph()
        proxy_rtv = await self.right_to_votes.get_valid(identity)
        if proxy_rtv.public_proxy_id != identity.id:
            proxy_rtv.public_proxy_id = identity.id
            await self.repos.right_to_votes.save(proxy_rtv)
            logger.info("public_proxy_enabled", proxy_id=identity.id)
        await self._accept_requests(identity, proxy_rtv, None, skip_circular=True)
        return proxy_rtv

    async def stop_being_public_proxy(self, identity: Identity) -> RightToVote:
        """Unlink the identity from its right to vote. Existing delegations stay."""
        await self.repos.lock_delegation_graph()
        proxy_rtv = await self.right_to_votes.get_valid(identity)
        if proxy_rtv.public_proxy_id is not None:
            proxy_rtv.public_proxy_id = None
            await self.repos.right_to_votes.save(proxy_rtv)
            logger.info("public_proxy_disabled", proxy_id=identity.id)
        return proxy_rtv
