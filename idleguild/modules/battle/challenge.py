"""
Consent challenge store
=======================

Purpose
-------
In-memory holding area for consent-tier battles waiting on the defender.

Domain
------
- A challenge is created with its bet already escrowed from the attacker.
- State moves PENDING_CONSENT -> RESOLVED | DECLINED | EXPIRED exactly once.
- Each pending challenge owns a cancellable asyncio timer that expires it.

Design Decisions
----------------
- `claim()` is a synchronous compare-and-set: there is no await between the
  state check and the write, so on a single event loop exactly one of
  accept / decline / timer wins. Losers see `None`.
- A claim cancels the timer unless the timer itself is the claimant.
- The store never touches the database; refunds and resolution belong to
  BattleService.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from idleguild.core.database.base import utc_now
from idleguild.database.models.enums import ChallengeState, RiskTier


@dataclass
class Challenge:
    attacker_id: int
    defender_id: int
    attacker_owner_id: str
    defender_owner_id: str
    bet: int
    attacker_power: float
    defender_power: float
    power_ratio: float
    created_at: datetime
    expires_at: datetime
    risk_tier: RiskTier = RiskTier.CONSENT
    challenge_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    state: ChallengeState = ChallengeState.PENDING_CONSENT
    timer: Optional[asyncio.Task] = field(default=None, repr=False, compare=False)

    @property
    def is_pending(self) -> bool:
        return self.state is ChallengeState.PENDING_CONSENT

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utc_now()) >= self.expires_at

    def to_dict(self) -> Dict[str, object]:
        return {
            "challenge_id": self.challenge_id,
            "attacker_id": self.attacker_id,
            "defender_id": self.defender_id,
            "bet": self.bet,
            "attacker_power": self.attacker_power,
            "defender_power": self.defender_power,
            "power_ratio": self.power_ratio,
            "state": self.state.value,
            "expires_at": self.expires_at.isoformat(),
        }


class ChallengeRegistry:
    """Keyed store of live consent challenges."""

    def __init__(self) -> None:
        self._challenges: Dict[str, Challenge] = {}

    def __len__(self) -> int:
        return len(self._challenges)

    def __contains__(self, challenge_id: str) -> bool:
        return challenge_id in self._challenges

    @staticmethod
    def build(
        *,
        attacker_id: int,
        defender_id: int,
        attacker_owner_id: str,
        defender_owner_id: str,
        bet: int,
        attacker_power: float,
        defender_power: float,
        power_ratio: float,
        timeout_seconds: float,
        now: Optional[datetime] = None,
    ) -> Challenge:
        now = now or utc_now()
        return Challenge(
            attacker_id=attacker_id,
            defender_id=defender_id,
            attacker_owner_id=attacker_owner_id,
            defender_owner_id=defender_owner_id,
            bet=bet,
            attacker_power=attacker_power,
            defender_power=defender_power,
            power_ratio=power_ratio,
            created_at=now,
            expires_at=now + timedelta(seconds=timeout_seconds),
        )

    def insert(self, challenge: Challenge) -> Challenge:
        if challenge.challenge_id in self._challenges:
            raise KeyError(f"Challenge {challenge.challenge_id} already registered")
        self._challenges[challenge.challenge_id] = challenge
        return challenge

    def get(self, challenge_id: str) -> Optional[Challenge]:
        return self._challenges.get(challenge_id)

    def remove(self, challenge_id: str) -> Optional[Challenge]:
        return self._challenges.pop(challenge_id, None)

    def pending(self) -> List[Challenge]:
        return [c for c in self._challenges.values() if c.is_pending]

    def claim(self, challenge_id: str, new_state: ChallengeState) -> Optional[Challenge]:
        """
        Move a pending challenge into `new_state` and drop it from the store.

        Returns:
            The claimed challenge, or None if it is unknown or already terminal.
        """
        if not new_state.is_terminal:
            raise ValueError(f"Cannot claim into non-terminal state {new_state.value}")

        challenge = self._challenges.get(challenge_id)
        if challenge is None or not challenge.is_pending:
            return None

        challenge.state = new_state
        self._challenges.pop(challenge_id, None)

        timer = challenge.timer
        if timer is not None and not timer.done():
            try:
                current = asyncio.current_task()
            except RuntimeError:
                current = None
            if timer is not current:
                timer.cancel()
        return challenge

    def sweep(self, now: Optional[datetime] = None) -> List[Challenge]:
        """Claim every pending challenge past its deadline as EXPIRED."""
        now = now or utc_now()
        overdue = [c.challenge_id for c in self.pending() if c.is_expired(now)]
        claimed = []
        for challenge_id in overdue:
            challenge = self.claim(challenge_id, ChallengeState.EXPIRED)
            if challenge is not None:
                claimed.append(challenge)
        return claimed

    def drain(self) -> List[Challenge]:
        """Claim all pending challenges as EXPIRED (shutdown path)."""
        claimed = []
        for challenge in self.pending():
            result = self.claim(challenge.challenge_id, ChallengeState.EXPIRED)
            if result is not None:
                claimed.append(result)
        return claimed
