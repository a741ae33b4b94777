"""
Action submission and the per-character turn summary.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from arbiter.core.action_resolver import ActionRequest, ActionResolver
from arbiter.core.errors import CharacterNotFoundError
from arbiter.core.turn_status import build_turn_status
from arbiter.services.lobby import LobbyService

logger = logging.getLogger("arbiter.services.actions")


class ActionService(LobbyService):

    async def submit(
        self,
        request: ActionRequest,
        now: datetime,
        lobby_id: Optional[str] = None,
        expected_round: Optional[int] = None,
        expected_turn_index: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Resolve one action and persist everything it touched.

        ``lobby_id`` is only needed when the actor is a monster.
        """
        lobby_id = await self.lobby_of(request.actor_id, lobby_id)
        state = await self.load(lobby_id)
        session = state.session
        if session.is_active:
            session.check_expected(expected_round, expected_turn_index)

        resolver = ActionResolver(self.reference)

        def resolve():
            session.check_integrity(state.characters)
            return resolver.resolve(request, state.characters, session, now)

        outcome = await self.run_guarded(state, resolve)
        await self.save(state)

        actor = state.roster.get(request.actor_id)
        await self.record(
            state, outcome.verb, actor=actor,
            description=request.description,
            result=outcome.narration,
            data={"rolls": outcome.rolls, "targets": list(outcome.targets)},
        )
        return outcome.to_dict()

    async def my_turn(self, character_id: str, now: datetime) -> Dict[str, Any]:
        record = await self.characters.get_by_id(character_id)
        if record is None:
            raise CharacterNotFoundError(character_id)
        state = await self.load(record.lobby_id)
        return build_turn_status(
            state.characters[character_id],
            state.session,
            state.roster,
            await self.recent_events(record.lobby_id),
            settings=self.settings,
            now=now,
            reference=self.reference,
        )
