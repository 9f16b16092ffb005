"""
BattleService - wagered PvP between guilds
==========================================

Purpose
-------
Orchestrates battle resolution on top of the pure battle engine: validation,
cooldowns, consent challenges with escrow, free revenge and counter-attacks.

Responsibilities
----------------
- `resolve_battle`: normal and capped tiers resolve immediately; the consent
  tier escrows the bet and opens a challenge for the defender
- `accept_challenge` / `decline_challenge` / `expire_challenge`
- `start_free_revenge` and `counter_attack`
- `resolve_random_battle`: attack a randomly drawn guild
- `sweep_challenges` / `shutdown`: expire and refund stale or live challenges
- History and stats views

Concurrency
-----------
- Both guild rows are locked in primary-key order for every resolution.
- Escrow is a conditional debit under the attacker's row lock.
- Challenge state transitions go through `ChallengeRegistry.claim()`; only
  the claimant touches the escrow afterwards.
- Declined or expired challenges refund in full and leave no battle record
  and no cooldown.
- Acceptance re-runs the cooldown and daily-limit checks; a challenge that
  fails them is refunded instead of resolved.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Tuple, Union

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from idleguild.core.database.base import as_utc, utc_now
from idleguild.core.database.service import DatabaseService
from idleguild.core.validation.input_validator import InputValidator
from idleguild.database.models import Battle, ChallengeState, Guild, RiskTier
from idleguild.modules.battle import engine
from idleguild.modules.battle.challenge import Challenge, ChallengeRegistry
from idleguild.modules.battle.cooldowns import (
    CooldownSettings,
    battles_today,
    check_battle_cooldowns,
    remaining_battles_today,
)
from idleguild.modules.economy.snapshot import BonusSnapshot, BonusSnapshotLoader
from idleguild.modules.guild.repository import GuildRepository
from idleguild.modules.progression.leveling import LevelUpResult, apply_level_ups
from idleguild.modules.shared.base_repository import BaseRepository
from idleguild.modules.shared.base_service import BaseService
from idleguild.modules.shared.exceptions import (
    ConcurrencyConflictError,
    InsufficientResourcesError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from idleguild.core.config.manager import ConfigManager
    from idleguild.core.event.bus import EventBus
    from idleguild.modules.prestige.service import PrestigeResult, PrestigeService


@dataclass(frozen=True)
class BattleOutcome:
    battle_id: int
    attacker_id: int
    defender_id: int
    winner_id: int
    attacker_won: bool
    bet: int
    gold_transferred: int
    xp_gained: int
    was_capped: bool
    win_chance: float
    attacker_power: float
    defender_power: float
    risk_tier: RiskTier
    is_free_revenge: bool = False
    revenge_eligible: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "battle_id": self.battle_id,
            "attacker_id": self.attacker_id,
            "defender_id": self.defender_id,
            "winner_id": self.winner_id,
            "attacker_won": self.attacker_won,
            "bet": self.bet,
            "gold_transferred": self.gold_transferred,
            "xp_gained": self.xp_gained,
            "was_capped": self.was_capped,
            "win_chance": self.win_chance,
            "attacker_power": self.attacker_power,
            "defender_power": self.defender_power,
            "risk_tier": self.risk_tier.value,
            "is_free_revenge": self.is_free_revenge,
            "revenge_eligible": self.revenge_eligible,
        }


class BattleService(BaseService):
    """
    Guild-versus-guild battles.

    Business Logic:
    - Bets must meet `battle.minimum_bet` and be covered by attacker gold
    - Global, per-target and daily cooldowns gate every new attack
    - Power ratio >= consent ratio requires the defender to accept
    - Any consent-tier battle, whoever wins it, grants the weaker defender
      one free revenge within `battle.revenge_window_seconds`
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        prestige_service: Optional[PrestigeService] = None,
        rng: Optional[Callable[[], float]] = None,
        registry: Optional[ChallengeRegistry] = None,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._prestige = prestige_service
        self._rng = rng or random.random
        self._challenges = registry or ChallengeRegistry()
        self._guild_repo = GuildRepository(self.log)
        self._battle_repo = BaseRepository[Battle](Battle, self.log)
        self._snapshots = BonusSnapshotLoader(config_manager, self.log)

    @property
    def challenges(self) -> ChallengeRegistry:
        return self._challenges

    # -------------------------------------------------------------------------
    # Config helpers
    # -------------------------------------------------------------------------

    def _cooldown_settings(self) -> CooldownSettings:
        return CooldownSettings.from_config(self._config)

    def _ratios(self) -> Tuple[float, float]:
        return (
            float(self.get_config("battle.capped_ratio", engine.CAPPED_RATIO)),
            float(self.get_config("battle.consent_ratio", engine.CONSENT_RATIO)),
        )

    def _power(self, guild: Guild, snapshot: BonusSnapshot) -> float:
        return engine.compute_power(
            guild.adventurer_count,
            snapshot.rates.gold_per_hour,
            guild.xp,
            gold_divisor=float(self.get_config("battle.power_gold_divisor", engine.POWER_GOLD_DIVISOR)),
            xp_divisor=float(self.get_config("battle.power_xp_divisor", engine.POWER_XP_DIVISOR)),
        )

    def _win_chance(self, attacker_power: float, defender_power: float) -> float:
        return engine.compute_win_chance(
            attacker_power,
            defender_power,
            spread=float(self.get_config("battle.win_chance_spread", engine.WIN_CHANCE_SPREAD)),
            minimum=float(self.get_config("battle.win_chance_min", engine.WIN_CHANCE_MIN)),
            maximum=float(self.get_config("battle.win_chance_max", engine.WIN_CHANCE_MAX)),
        )

    def _classify(self, attacker_power: float, defender_power: float) -> Tuple[float, RiskTier]:
        capped_ratio, consent_ratio = self._ratios()
        ratio = engine.compute_power_ratio(attacker_power, defender_power)
        return ratio, engine.classify_risk_tier(ratio, capped_ratio, consent_ratio)

    # -------------------------------------------------------------------------
    # Shared helpers
    # -------------------------------------------------------------------------

    async def _lock_pair(self, session: AsyncSession, first_id: int, second_id: int) -> Tuple[Guild, Guild]:
        rows = {g.id: g for g in await self._guild_repo.get_many_for_update(session, [first_id, second_id])}
        if first_id not in rows:
            raise NotFoundError("Guild", first_id)
        if second_id not in rows:
            raise NotFoundError("Guild", second_id)
        return rows[first_id], rows[second_id]

    async def _last_pair_battle_at(self, session: AsyncSession, attacker_id: int, defender_id: int) -> Optional[datetime]:
        rows = await self._battle_repo.find_many_where(
            session,
            Battle.attacker_id == attacker_id,
            Battle.defender_id == defender_id,
            Battle.is_free_revenge.is_(False),
            order_by=Battle.created_at.desc(),
            limit=1,
        )
        return rows[0].created_at if rows else None

    @staticmethod
    def _record_tallies(winner: Guild, loser: Guild, gold: int, xp: int) -> None:
        winner.lifetime_battles_won += 1
        loser.lifetime_battles_lost += 1
        winner.battle_gold_won += gold
        loser.battle_gold_lost += gold
        winner.battle_xp_won += xp
        winner.lifetime_xp_earned += xp
        winner.peak_gold_balance = max(winner.peak_gold_balance, winner.gold)

    async def _post_battle_progression(
        self, session: AsyncSession, guild: Guild, snapshot: BonusSnapshot, now: datetime
    ) -> Tuple[LevelUpResult, Optional[PrestigeResult]]:
        level_up = apply_level_ups(guild)
        auto = None
        if self._prestige is not None:
            auto = await self._prestige.auto_prestige_in_session(session, guild, snapshot.owned_prestige, now=now)
        return level_up, auto

    async def _emit_progression(
        self, guild_id: int, level_up: LevelUpResult, auto: Optional[PrestigeResult]
    ) -> None:
        if level_up.leveled_up:
            await self.emit_event(
                "guild.leveled_up",
                {
                    "guild_id": guild_id,
                    "old_level": level_up.old_level,
                    "new_level": level_up.new_level,
                    "rank_changed": level_up.rank_changed,
                    "new_rank": level_up.new_rank.name,
                },
            )
        if auto is not None:
            await self.emit_event("prestige.completed", auto.to_dict())

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def resolve_battle(
        self, attacker_owner_id: Any, defender_owner_id: Any, bet: Any
    ) -> Union[BattleOutcome, Challenge]:
        """
        Attack another guild.

        Returns:
            BattleOutcome for normal and capped tiers, or the pending Challenge
            for the consent tier.

        Raises:
            ValidationError: Self-target or bet below the minimum
            NotFoundError: Either guild missing
            InsufficientResourcesError: Attacker cannot cover the bet
            CooldownActiveError / RateLimitError: Cooldown or daily limit
            ConcurrencyConflictError: State changed under the row locks
        """
        attacker_owner_id = InputValidator.validate_owner_id(attacker_owner_id, "attacker_owner_id")
        defender_owner_id = InputValidator.validate_owner_id(defender_owner_id, "defender_owner_id")
        if attacker_owner_id == defender_owner_id:
            raise ValidationError("defender_owner_id", "You cannot battle your own guild")

        bet = InputValidator.validate_positive_integer(bet, "bet")
        minimum_bet = int(self.get_config("battle.minimum_bet", 200))
        if bet < minimum_bet:
            raise ValidationError("bet", f"Minimum bet is {minimum_bet:,} gold")

        now = utc_now()
        async with DatabaseService.get_session() as session:
            attacker = await self._guild_repo.find_by_owner(session, attacker_owner_id)
            if attacker is None:
                raise NotFoundError("Guild", attacker_owner_id)
            defender = await self._guild_repo.find_by_owner(session, defender_owner_id)
            if defender is None:
                raise NotFoundError("Guild", defender_owner_id)
            if attacker.gold < bet:
                raise InsufficientResourcesError("gold", bet, attacker.gold)

            check_battle_cooldowns(
                attacker,
                self._cooldown_settings(),
                last_pair_battle_at=await self._last_pair_battle_at(session, attacker.id, defender.id),
                now=now,
            )
            attacker_power = self._power(attacker, await self._snapshots.load(session, attacker))
            defender_power = self._power(defender, await self._snapshots.load(session, defender))

        ratio, tier = self._classify(attacker_power, defender_power)
        if tier is RiskTier.CONSENT:
            return await self._open_challenge(
                attacker, defender, attacker_owner_id, defender_owner_id, bet, attacker_power, defender_power, ratio
            )

        return await self._resolve(
            attacker.id,
            defender.id,
            bet,
            escrow=0,
            expected_last_battle_at=attacker.last_battle_at,
            owners=(attacker_owner_id, defender_owner_id),
        )

    async def _resolve(
        self,
        attacker_id: int,
        defender_id: int,
        bet: int,
        *,
        escrow: int,
        owners: Tuple[str, str],
        expected_last_battle_at: Optional[datetime] = None,
    ) -> BattleOutcome:
        """
        Resolve one battle from freshly locked state.

        `escrow` is gold already held back from the attacker; it is returned to
        the attacker's balance before the bet changes hands.
        """
        now = utc_now()
        async with DatabaseService.get_transaction() as session:
            attacker, defender = await self._lock_pair(session, attacker_id, defender_id)
            attacker.gold += escrow

            if escrow == 0:
                if attacker.gold < bet:
                    raise ConcurrencyConflictError("battle", "attacker gold changed")
                if as_utc(attacker.last_battle_at) != as_utc(expected_last_battle_at):
                    raise ConcurrencyConflictError("battle", "attacker fought another battle")
            else:
                # Other challenges by the same attacker may have resolved while
                # this one was pending
                check_battle_cooldowns(
                    attacker,
                    self._cooldown_settings(),
                    last_pair_battle_at=await self._last_pair_battle_at(session, attacker_id, defender_id),
                    now=now,
                )

            attacker_snapshot = await self._snapshots.load(session, attacker)
            defender_snapshot = await self._snapshots.load(session, defender)
            attacker_power = self._power(attacker, attacker_snapshot)
            defender_power = self._power(defender, defender_snapshot)
            _, tier = self._classify(attacker_power, defender_power)
            if escrow:
                tier = RiskTier.CONSENT
            win_chance = self._win_chance(attacker_power, defender_power)

            attacker_won = engine.roll_outcome(win_chance, self._rng)
            winner, loser = (attacker, defender) if attacker_won else (defender, attacker)
            rewards = engine.compute_battle_rewards(
                attacker_won,
                attacker_power,
                defender_power,
                tier,
                bet,
                loser_gold=loser.gold,
                loser_xp=loser.xp,
                rng=self._rng,
            )

            loser.gold -= rewards.gold_transferred
            winner.gold += rewards.gold_transferred
            winner.xp += rewards.xp_bonus
            self._record_tallies(winner, loser, rewards.gold_transferred, rewards.xp_bonus)

            today = now.date()
            attacker.battles_today = battles_today(attacker, today) + 1
            attacker.last_battle_reset = today
            attacker.last_battle_at = now

            battle = Battle(
                attacker_id=attacker.id,
                defender_id=defender.id,
                winner_id=winner.id,
                bet_amount=bet,
                gold_transferred=rewards.gold_transferred,
                xp_transferred=rewards.xp_bonus,
                attacker_power=attacker_power,
                defender_power=defender_power,
                win_chance=win_chance,
                risk_tier=tier.value,
                created_at=now,
            )
            self._battle_repo.add(session, battle)
            await session.flush()

            winner_snapshot = attacker_snapshot if attacker_won else defender_snapshot
            level_up, auto = await self._post_battle_progression(session, winner, winner_snapshot, now)

            outcome = BattleOutcome(
                battle_id=battle.id,
                attacker_id=attacker.id,
                defender_id=defender.id,
                winner_id=winner.id,
                attacker_won=attacker_won,
                bet=bet,
                gold_transferred=rewards.gold_transferred,
                xp_gained=rewards.xp_bonus,
                was_capped=rewards.was_capped,
                win_chance=win_chance,
                attacker_power=attacker_power,
                defender_power=defender_power,
                risk_tier=tier,
                revenge_eligible=engine.is_revenge_eligible(battle),
            )

        self.log_operation(
            "resolve_battle",
            battle_id=outcome.battle_id,
            attacker_id=attacker_id,
            defender_id=defender_id,
            winner_id=outcome.winner_id,
            gold=outcome.gold_transferred,
            tier=tier.value,
        )
        await self.emit_event(
            "battle.resolved",
            {
                **outcome.to_dict(),
                "attacker_owner_id": owners[0],
                "defender_owner_id": owners[1],
            },
        )
        await self._emit_progression(outcome.winner_id, level_up, auto)
        return outcome

    # -------------------------------------------------------------------------
    # Consent challenges
    # -------------------------------------------------------------------------

    async def _open_challenge(
        self,
        attacker: Guild,
        defender: Guild,
        attacker_owner_id: str,
        defender_owner_id: str,
        bet: int,
        attacker_power: float,
        defender_power: float,
        ratio: float,
    ) -> Challenge:
        async with DatabaseService.get_transaction() as session:
            locked = await self._guild_repo.get_for_update(session, attacker.id)
            if locked is None:
                raise NotFoundError("Guild", attacker.id)
            if locked.gold < bet:
                raise ConcurrencyConflictError("battle", "attacker gold changed")
            locked.gold -= bet

        timeout = float(self.get_config("battle.consent_timeout_seconds", 30))
        challenge = self._challenges.insert(
            ChallengeRegistry.build(
                attacker_id=attacker.id,
                defender_id=defender.id,
                attacker_owner_id=attacker_owner_id,
                defender_owner_id=defender_owner_id,
                bet=bet,
                attacker_power=attacker_power,
                defender_power=defender_power,
                power_ratio=ratio,
                timeout_seconds=timeout,
            )
        )
        challenge.timer = asyncio.create_task(self._expire_after(challenge.challenge_id, timeout))

        self.log_operation(
            "open_challenge",
            challenge_id=challenge.challenge_id,
            attacker_id=attacker.id,
            defender_id=defender.id,
            bet=bet,
        )
        await self.emit_event(
            "battle.challenge_opened",
            {
                **challenge.to_dict(),
                "attacker_owner_id": attacker_owner_id,
                "defender_owner_id": defender_owner_id,
            },
        )
        return challenge

    async def _expire_after(self, challenge_id: str, timeout: float) -> None:
        await asyncio.sleep(timeout)
        try:
            await self.expire_challenge(challenge_id)
        except Exception as exc:
            self.log_error("expire_challenge", exc, challenge_id=challenge_id)

    async def _refund(self, challenge: Challenge) -> None:
        async with DatabaseService.get_transaction() as session:
            attacker = await self._guild_repo.get_for_update(session, challenge.attacker_id)
            if attacker is None:
                self.log.warning(
                    "Escrow refund skipped: attacker guild no longer exists",
                    extra={"challenge_id": challenge.challenge_id, "attacker_id": challenge.attacker_id},
                )
                return
            attacker.gold += challenge.bet

        self.log_operation(
            "refund_escrow",
            challenge_id=challenge.challenge_id,
            attacker_id=challenge.attacker_id,
            bet=challenge.bet,
            state=challenge.state.value,
        )

    def _claim_for_defender(self, action: str, challenge_id: str, actor_owner_id: str, state: ChallengeState) -> Challenge:
        challenge = self._challenges.get(challenge_id)
        if challenge is None:
            raise NotFoundError("Challenge", challenge_id)
        if challenge.defender_owner_id != actor_owner_id:
            raise InvalidOperationError(action, "Only the challenged guild can respond")

        claimed = self._challenges.claim(challenge_id, state)
        if claimed is None:
            raise InvalidOperationError(action, "This challenge is no longer pending")
        return claimed

    def get_challenge(self, challenge_id: str) -> Optional[Challenge]:
        return self._challenges.get(challenge_id)

    async def accept_challenge(self, challenge_id: str, actor_owner_id: Any) -> BattleOutcome:
        """
        Defender accepts; the battle runs on freshly fetched state.

        Cooldowns and the daily limit are checked again here, against the
        attacker's state at acceptance.

        Raises:
            NotFoundError: Unknown challenge, or a guild vanished (escrow refunded)
            InvalidOperationError: Not the defender, or challenge already settled
            CooldownActiveError / RateLimitError: The attacker fought elsewhere
                while the challenge was pending (escrow refunded)
        """
        actor_owner_id = InputValidator.validate_owner_id(actor_owner_id, "actor_owner_id")
        challenge = self._claim_for_defender("accept_challenge", challenge_id, actor_owner_id, ChallengeState.RESOLVED)

        try:
            return await self._resolve(
                challenge.attacker_id,
                challenge.defender_id,
                challenge.bet,
                escrow=challenge.bet,
                owners=(challenge.attacker_owner_id, challenge.defender_owner_id),
            )
        except Exception:
            await self._refund(challenge)
            raise

    async def decline_challenge(self, challenge_id: str, actor_owner_id: Any) -> Challenge:
        """Defender declines; the attacker's escrow is refunded in full."""
        actor_owner_id = InputValidator.validate_owner_id(actor_owner_id, "actor_owner_id")
        challenge = self._claim_for_defender("decline_challenge", challenge_id, actor_owner_id, ChallengeState.DECLINED)
        await self._refund(challenge)
        await self.emit_event("battle.challenge_declined", challenge.to_dict())
        return challenge

    async def expire_challenge(self, challenge_id: str) -> bool:
        """Expire and refund a pending challenge; False if it was already settled."""
        challenge = self._challenges.claim(challenge_id, ChallengeState.EXPIRED)
        if challenge is None:
            return False
        await self._refund(challenge)
        await self.emit_event("battle.challenge_expired", challenge.to_dict())
        return True

    async def sweep_challenges(self, now: Optional[datetime] = None) -> int:
        """Expire overdue challenges whose timers did not fire."""
        expired = self._challenges.sweep(now)
        for challenge in expired:
            await self._refund(challenge)
            await self.emit_event("battle.challenge_expired", challenge.to_dict())
        if expired:
            self.log_operation("sweep_challenges", expired=len(expired))
        return len(expired)

    async def shutdown(self) -> int:
        """Expire and refund every pending challenge."""
        drained = self._challenges.drain()
        for challenge in drained:
            await self._refund(challenge)
        self.log.info("Battle challenges drained", extra={"refunded": len(drained)})
        return len(drained)

    # -------------------------------------------------------------------------
    # Revenge & counter-attack
    # -------------------------------------------------------------------------

    async def start_free_revenge(self, battle_id: int, actor_owner_id: Any) -> BattleOutcome:
        """
        Free rematch for the defender of a lopsided battle.

        No bet, no cooldowns. A win takes 1-2% of the opponent's gold and XP;
        a loss costs nothing.

        Raises:
            NotFoundError: Unknown battle or guild
            InvalidOperationError: Not the defender, not eligible, window closed,
                or revenge already taken
            ConcurrencyConflictError: Another revenge for this battle landed first
        """
        battle_id = InputValidator.validate_positive_integer(battle_id, "battle_id")
        actor_owner_id = InputValidator.validate_owner_id(actor_owner_id, "actor_owner_id")
        now = utc_now()

        async with DatabaseService.get_session() as session:
            original = await self._battle_repo.get(session, battle_id)
            if original is None:
                raise NotFoundError("Battle", battle_id)
            actor = await self._guild_repo.find_by_owner(session, actor_owner_id)
            if actor is None:
                raise NotFoundError("Guild", actor_owner_id)
            if actor.id != original.defender_id:
                raise InvalidOperationError("revenge", "Only the defender of that battle can take revenge")
            if not engine.is_revenge_eligible(original):
                raise InvalidOperationError("revenge", "That battle does not grant a free revenge")
            window = int(self.get_config("battle.revenge_window_seconds", 3600))
            if now - as_utc(original.created_at) > timedelta(seconds=window):
                raise InvalidOperationError("revenge", "The revenge window has closed")
            if await self._battle_repo.exists(session, Battle.revenge_of_id == battle_id):
                raise InvalidOperationError("revenge", "Revenge for that battle was already taken")
            opponent = await self._guild_repo.get(session, original.attacker_id)
            if opponent is None:
                raise NotFoundError("Guild", original.attacker_id)
            opponent_owner_id = opponent.owner_id

        try:
            async with DatabaseService.get_transaction() as session:
                revenger, opponent = await self._lock_pair(session, original.defender_id, original.attacker_id)
                if await self._battle_repo.exists(session, Battle.revenge_of_id == battle_id):
                    raise ConcurrencyConflictError("revenge", "revenge already taken")

                revenger_snapshot = await self._snapshots.load(session, revenger)
                revenger_power = self._power(revenger, revenger_snapshot)
                opponent_power = self._power(opponent, await self._snapshots.load(session, opponent))
                _, tier = self._classify(revenger_power, opponent_power)
                win_chance = self._win_chance(revenger_power, opponent_power)

                won = engine.roll_outcome(win_chance, self._rng)
                rewards = engine.compute_revenge_rewards(won, opponent.gold, opponent.xp, self._rng)
                winner, loser = (revenger, opponent) if won else (opponent, revenger)

                opponent.gold -= rewards.gold
                revenger.gold += rewards.gold
                revenger.xp += rewards.xp
                self._record_tallies(winner, loser, rewards.gold, rewards.xp)

                battle = Battle(
                    attacker_id=revenger.id,
                    defender_id=opponent.id,
                    winner_id=winner.id,
                    bet_amount=0,
                    gold_transferred=rewards.gold,
                    xp_transferred=rewards.xp,
                    attacker_power=revenger_power,
                    defender_power=opponent_power,
                    win_chance=win_chance,
                    risk_tier=tier.value,
                    is_free_revenge=True,
                    revenge_of_id=battle_id,
                    created_at=now,
                )
                self._battle_repo.add(session, battle)
                await session.flush()

                level_up, auto = await self._post_battle_progression(session, revenger, revenger_snapshot, now)
                outcome = BattleOutcome(
                    battle_id=battle.id,
                    attacker_id=revenger.id,
                    defender_id=opponent.id,
                    winner_id=winner.id,
                    attacker_won=won,
                    bet=0,
                    gold_transferred=rewards.gold,
                    xp_gained=rewards.xp,
                    was_capped=False,
                    win_chance=win_chance,
                    attacker_power=revenger_power,
                    defender_power=opponent_power,
                    risk_tier=tier,
                    is_free_revenge=True,
                )
        except IntegrityError as exc:
            raise ConcurrencyConflictError("revenge", "revenge already taken") from exc

        self.log_operation("start_free_revenge", battle_id=outcome.battle_id, revenge_of=battle_id, won=won)
        await self.emit_event(
            "battle.resolved",
            {
                **outcome.to_dict(),
                "revenge_of_id": battle_id,
                "attacker_owner_id": actor_owner_id,
                "defender_owner_id": opponent_owner_id,
            },
        )
        await self._emit_progression(outcome.attacker_id, level_up, auto)
        return outcome

    async def counter_attack(self, battle_id: int, actor_owner_id: Any) -> Union[BattleOutcome, Challenge]:
        """
        Attack back the guild that attacked you, reusing its bet where affordable.

        Normal battle rules apply: minimum bet, cooldowns and tiers.
        """
        battle_id = InputValidator.validate_positive_integer(battle_id, "battle_id")
        actor_owner_id = InputValidator.validate_owner_id(actor_owner_id, "actor_owner_id")

        async with DatabaseService.get_session() as session:
            original = await self._battle_repo.get(session, battle_id)
            if original is None:
                raise NotFoundError("Battle", battle_id)
            actor = await self._guild_repo.find_by_owner(session, actor_owner_id)
            if actor is None:
                raise NotFoundError("Guild", actor_owner_id)
            if actor.id != original.defender_id:
                raise InvalidOperationError("counter_attack", "Only the defender of that battle can counter-attack")
            target = await self._guild_repo.get(session, original.attacker_id)
            if target is None:
                raise NotFoundError("Guild", original.attacker_id)

        bet = engine.counter_attack_bet(original.bet_amount, actor.gold)
        return await self.resolve_battle(actor_owner_id, target.owner_id, bet)

    async def resolve_random_battle(self, attacker_owner_id: Any, bet: Any) -> Union[BattleOutcome, Challenge]:
        """
        Attack a guild drawn uniformly from everyone except the attacker.

        Raises:
            NotFoundError: The attacker has no guild, or no other guild exists
        """
        attacker_owner_id = InputValidator.validate_owner_id(attacker_owner_id, "attacker_owner_id")
        async with DatabaseService.get_session() as session:
            attacker = await self._guild_repo.find_by_owner(session, attacker_owner_id)
            if attacker is None:
                raise NotFoundError("Guild", attacker_owner_id)
            candidates = await self._guild_repo.count(session, Guild.id != attacker.id)
            if candidates == 0:
                raise NotFoundError("Opponent")
            index = min(int(self._rng() * candidates), candidates - 1)
            target = await self._guild_repo.nth_other(session, attacker.id, index)
        if target is None:
            raise ConcurrencyConflictError("resolve_random_battle", "opponent list changed")

        return await self.resolve_battle(attacker_owner_id, target.owner_id, bet)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    async def get_battle_history(self, guild_id: int, limit: int = 10) -> List[Battle]:
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        limit = InputValidator.validate_positive_integer(limit, "limit", max_value=100)
        async with DatabaseService.get_session() as session:
            return await self._battle_repo.find_many_where(
                session,
                or_(Battle.attacker_id == guild_id, Battle.defender_id == guild_id),
                order_by=Battle.created_at.desc(),
                limit=limit,
            )

    async def get_battle_stats(self, guild_id: int) -> Dict[str, Any]:
        guild_id = InputValidator.validate_positive_integer(guild_id, "guild_id")
        async with DatabaseService.get_session() as session:
            guild = await self._guild_repo.get(session, guild_id)
        if guild is None:
            raise NotFoundError("Guild", guild_id)

        fought = guild.lifetime_battles_won + guild.lifetime_battles_lost
        return {
            "guild_id": guild_id,
            "wins": guild.lifetime_battles_won,
            "losses": guild.lifetime_battles_lost,
            "win_rate": round(guild.lifetime_battles_won / fought * 100, 1) if fought else 0.0,
            "gold_won": guild.battle_gold_won,
            "gold_lost": guild.battle_gold_lost,
            "xp_won": guild.battle_xp_won,
            "battles_remaining_today": remaining_battles_today(guild, self._cooldown_settings()),
        }
