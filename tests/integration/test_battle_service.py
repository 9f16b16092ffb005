"""
Integration tests for BattleService.

Test Coverage
-------------
- Normal and capped battles, gold transfer and tallies
- Cooldowns and the daily limit, re-checked when a challenge is accepted
- Consent challenges: escrow, accept, decline, timeout, sweep, shutdown
- Races between accept, decline and expiry
- Free revenge, counter-attacks and random opponents

Power reference (no upgrades, no XP): 5 adventurers = 5.6, 20 = 22.4, 50 = 56.0
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import delete, update

from idleguild.core.database.base import utc_now
from idleguild.core.database.service import DatabaseService
from idleguild.database.models import Battle, ChallengeState, Guild, RiskTier
from idleguild.modules.battle.challenge import Challenge
from idleguild.modules.shared.exceptions import (
    CooldownActiveError,
    InsufficientResourcesError,
    InvalidOperationError,
    NotFoundError,
    RateLimitError,
    ValidationError,
)


@pytest.fixture
def duel(make_guild):
    """Attacker and defender with 1000 gold each."""

    async def _duel(attacker_adventurers: int = 5, defender_adventurers: int = 5):
        attacker = await make_guild(gold=1000, adventurer_count=attacker_adventurers)
        defender = await make_guild(gold=1000, adventurer_count=defender_adventurers)
        return attacker, defender

    return _duel


async def open_challenge(battle_service, duel, bet: int = 500):
    attacker, defender = await duel(attacker_adventurers=50)
    challenge = await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, bet)
    assert isinstance(challenge, Challenge)
    return attacker, defender, challenge


# ============================================================================
# IMMEDIATE BATTLES
# ============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
class TestImmediateBattles:
    async def test_attacker_wins_normal_battle(self, battle_service, duel, guild_helpers, events):
        """Evenly matched guilds: the bet moves in full to the winner."""
        # Arrange
        attacker, defender = await duel()

        # Act
        outcome = await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 200)

        # Assert
        assert outcome.risk_tier is RiskTier.NORMAL
        assert outcome.win_chance == 50
        assert outcome.attacker_won
        assert outcome.gold_transferred == 200
        a, d = await guild_helpers.load(attacker.id), await guild_helpers.load(defender.id)
        assert (a.gold, d.gold) == (1200, 800)
        assert (a.lifetime_battles_won, d.lifetime_battles_lost) == (1, 1)
        assert a.battles_today == 1
        assert a.last_battle_at is not None
        assert d.last_battle_at is None

        payload = events.payloads("battle.resolved")[0]
        assert payload["defender_owner_id"] == defender.owner_id
        assert payload["battle_id"] == outcome.battle_id

    async def test_attacker_loses(self, battle_service, duel, guild_helpers, rng):
        attacker, defender = await duel()
        rng.value = 0.99

        outcome = await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 200)

        assert not outcome.attacker_won
        assert outcome.winner_id == defender.id
        assert (await guild_helpers.load(attacker.id)).gold == 800
        assert (await guild_helpers.load(defender.id)).gold == 1200

    async def test_capped_tier_limits_stronger_winner(self, battle_service, duel, guild_helpers):
        attacker, defender = await duel(attacker_adventurers=20)

        outcome = await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 500)

        assert outcome.risk_tier is RiskTier.CAPPED
        assert outcome.was_capped
        assert outcome.gold_transferred == 10
        assert (await guild_helpers.load(defender.id)).gold == 990

    async def test_battle_record_written(self, battle_service, duel, guild_helpers):
        attacker, defender = await duel()

        outcome = await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 200)

        history = await battle_service.get_battle_history(defender.id)
        assert [battle.id for battle in history] == [outcome.battle_id]
        assert history[0].bet_amount == 200
        assert history[0].risk_tier == RiskTier.NORMAL.value
        stats = await battle_service.get_battle_stats(attacker.id)
        assert stats["wins"] == 1
        assert stats["win_rate"] == 100.0
        assert stats["battles_remaining_today"] == 9


@pytest.mark.integration
@pytest.mark.asyncio
class TestBattleValidation:
    async def test_self_target(self, battle_service, duel):
        attacker, _ = await duel()
        with pytest.raises(ValidationError):
            await battle_service.resolve_battle(attacker.owner_id, attacker.owner_id, 200)

    async def test_minimum_bet(self, battle_service, duel):
        attacker, defender = await duel()
        with pytest.raises(ValidationError) as exc_info:
            await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 199)
        assert exc_info.value.field == "bet"

    async def test_bet_above_gold(self, battle_service, duel):
        attacker, defender = await duel()
        with pytest.raises(InsufficientResourcesError):
            await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 1001)

    async def test_unknown_defender(self, battle_service, duel):
        attacker, _ = await duel()
        with pytest.raises(NotFoundError):
            await battle_service.resolve_battle(attacker.owner_id, "ghost", 200)


@pytest.mark.integration
@pytest.mark.asyncio
class TestRandomBattle:
    @pytest.mark.parametrize("roll, expected", [(0.0, 0), (0.5, 1), (0.99, 2)])
    async def test_draw_follows_rng(self, battle_service, make_guild, rng, roll, expected):
        """The roll picks among the other guilds in founding order, never the attacker."""
        # Arrange
        first = await make_guild(gold=1000)
        attacker = await make_guild(gold=1000)
        others = [first, await make_guild(gold=1000), await make_guild(gold=1000)]
        rng.value = roll

        # Act
        outcome = await battle_service.resolve_random_battle(attacker.owner_id, 200)

        # Assert
        assert outcome.attacker_id == attacker.id
        assert outcome.defender_id == others[expected].id

    async def test_no_other_guilds(self, battle_service, make_guild):
        attacker = await make_guild(gold=1000)

        with pytest.raises(NotFoundError) as exc_info:
            await battle_service.resolve_random_battle(attacker.owner_id, 200)
        assert exc_info.value.resource_type == "Opponent"

    async def test_unknown_attacker(self, battle_service, make_guild):
        await make_guild(gold=1000)

        with pytest.raises(NotFoundError):
            await battle_service.resolve_random_battle("ghost", 200)

    async def test_usual_battle_rules_apply(self, battle_service, make_guild):
        attacker = await make_guild(gold=1000)
        await make_guild(gold=1000)

        with pytest.raises(ValidationError):
            await battle_service.resolve_random_battle(attacker.owner_id, 50)


@pytest.mark.integration
@pytest.mark.asyncio
class TestCooldowns:
    async def test_global_cooldown(self, battle_service, duel, make_guild):
        attacker, defender = await duel()
        other = await make_guild(gold=1000)
        await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 200)

        with pytest.raises(CooldownActiveError) as exc_info:
            await battle_service.resolve_battle(attacker.owner_id, other.owner_id, 200)
        assert exc_info.value.action == "battle"

    async def test_target_cooldown(self, battle_service, duel, make_guild, game_config):
        game_config.set("battle.global_cooldown_seconds", 0)
        attacker, defender = await duel()
        other = await make_guild(gold=1000)
        await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 200)

        with pytest.raises(CooldownActiveError) as exc_info:
            await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 200)
        assert exc_info.value.action == "battle_target"
        await battle_service.resolve_battle(attacker.owner_id, other.owner_id, 200)

    async def test_daily_limit(self, battle_service, duel, game_config):
        game_config.set("battle.global_cooldown_seconds", 0)
        game_config.set("battle.target_cooldown_seconds", 0)
        game_config.set("battle.daily_limit", 2)
        attacker, defender = await duel()

        await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 200)
        await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 200)
        with pytest.raises(RateLimitError):
            await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 200)


# ============================================================================
# CONSENT CHALLENGES
# ============================================================================


@pytest.mark.integration
@pytest.mark.asyncio
class TestConsentChallenges:
    async def test_lopsided_battle_escrows_bet(self, battle_service, duel, guild_helpers, events):
        attacker, defender, challenge = await open_challenge(battle_service, duel)

        assert challenge.state is ChallengeState.PENDING_CONSENT
        assert challenge.power_ratio == pytest.approx(10.0)
        assert (await guild_helpers.load(attacker.id)).gold == 500
        assert await guild_helpers.count(Battle) == 0
        assert events.payloads("battle.challenge_opened")[0]["defender_owner_id"] == defender.owner_id

    async def test_accept_resolves_with_escrow(self, battle_service, duel, guild_helpers, rng):
        """The escrowed bet is returned to the attacker before it changes hands."""
        attacker, defender, challenge = await open_challenge(battle_service, duel)
        rng.value = 0.99

        outcome = await battle_service.accept_challenge(challenge.challenge_id, defender.owner_id)

        assert outcome.risk_tier is RiskTier.CONSENT
        assert not outcome.attacker_won
        assert outcome.revenge_eligible
        assert (await guild_helpers.load(attacker.id)).gold == 500
        assert (await guild_helpers.load(defender.id)).gold == 1500
        assert len(battle_service.challenges) == 0

    async def test_accept_stronger_attacker_wins_full_bet(self, battle_service, duel, guild_helpers):
        attacker, defender, challenge = await open_challenge(battle_service, duel)

        outcome = await battle_service.accept_challenge(challenge.challenge_id, defender.owner_id)

        assert outcome.attacker_won
        assert outcome.gold_transferred == 500
        assert (await guild_helpers.load(attacker.id)).gold == 1500

    async def test_decline_refunds_without_record(self, battle_service, duel, guild_helpers, events):
        attacker, defender, challenge = await open_challenge(battle_service, duel)

        declined = await battle_service.decline_challenge(challenge.challenge_id, defender.owner_id)

        assert declined.state is ChallengeState.DECLINED
        stored = await guild_helpers.load(attacker.id)
        assert stored.gold == 1000
        assert stored.last_battle_at is None
        assert await guild_helpers.count(Battle) == 0
        assert "battle.challenge_declined" in events.names()

    async def test_only_defender_may_respond(self, battle_service, duel):
        attacker, _, challenge = await open_challenge(battle_service, duel)

        with pytest.raises(InvalidOperationError):
            await battle_service.accept_challenge(challenge.challenge_id, attacker.owner_id)
        assert challenge.is_pending

    async def test_unknown_challenge(self, battle_service, duel):
        _, defender = await duel()
        with pytest.raises(NotFoundError):
            await battle_service.decline_challenge("no-such-challenge", defender.owner_id)

    async def test_timeout_refunds(self, battle_service, duel, guild_helpers, game_config, events):
        """With no response the timer expires the challenge and refunds the attacker."""
        game_config.set("battle.consent_timeout_seconds", 0.05)
        attacker, _, challenge = await open_challenge(battle_service, duel)

        await challenge.timer

        assert challenge.state is ChallengeState.EXPIRED
        assert (await guild_helpers.load(attacker.id)).gold == 1000
        assert "battle.challenge_expired" in events.names()
        assert len(battle_service.challenges) == 0

    async def test_sweep_expires_overdue(self, battle_service, duel, guild_helpers):
        attacker, _, challenge = await open_challenge(battle_service, duel)

        expired = await battle_service.sweep_challenges(utc_now() + timedelta(minutes=5))

        assert expired == 1
        assert challenge.state is ChallengeState.EXPIRED
        assert (await guild_helpers.load(attacker.id)).gold == 1000

    async def test_shutdown_refunds_pending(self, battle_service, duel, guild_helpers):
        attacker, _, _ = await open_challenge(battle_service, duel)

        assert await battle_service.shutdown() == 1
        assert (await guild_helpers.load(attacker.id)).gold == 1000

    async def test_defender_gone_on_accept_refunds(self, battle_service, duel, guild_helpers):
        attacker, defender, challenge = await open_challenge(battle_service, duel)
        async with DatabaseService.get_transaction() as session:
            await session.execute(delete(Guild).where(Guild.id == defender.id))

        with pytest.raises(NotFoundError):
            await battle_service.accept_challenge(challenge.challenge_id, defender.owner_id)
        assert (await guild_helpers.load(attacker.id)).gold == 1000


@pytest.mark.integration
@pytest.mark.asyncio
class TestChallengeRaces:
    async def test_accept_and_decline_race(self, battle_service, duel, guild_helpers):
        """Exactly one response wins; gold is neither duplicated nor lost."""
        attacker, defender, challenge = await open_challenge(battle_service, duel)

        results = await asyncio.gather(
            battle_service.accept_challenge(challenge.challenge_id, defender.owner_id),
            battle_service.decline_challenge(challenge.challenge_id, defender.owner_id),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], (InvalidOperationError, NotFoundError))
        a, d = await guild_helpers.load(attacker.id), await guild_helpers.load(defender.id)
        assert a.gold + d.gold == 2000

    async def test_accept_after_expiry(self, battle_service, duel, guild_helpers):
        attacker, defender, challenge = await open_challenge(battle_service, duel)

        assert await battle_service.expire_challenge(challenge.challenge_id) is True
        with pytest.raises(NotFoundError):
            await battle_service.accept_challenge(challenge.challenge_id, defender.owner_id)

        assert (await guild_helpers.load(attacker.id)).gold == 1000
        assert await guild_helpers.count(Battle) == 0

    async def test_refund_happens_once(self, battle_service, duel, guild_helpers):
        attacker, _, challenge = await open_challenge(battle_service, duel)

        first = await battle_service.expire_challenge(challenge.challenge_id)
        second = await battle_service.expire_challenge(challenge.challenge_id)
        swept = await battle_service.sweep_challenges(utc_now() + timedelta(minutes=5))

        assert (first, second, swept) == (True, False, 0)
        assert (await guild_helpers.load(attacker.id)).gold == 1000


@pytest.fixture
def two_challenges(battle_service, make_guild):
    """One strong attacker (2000 gold) with pending challenges against two weak guilds."""

    async def _open():
        attacker = await make_guild(gold=2000, adventurer_count=50)
        first = await make_guild(gold=1000, adventurer_count=5)
        second = await make_guild(gold=1000, adventurer_count=5)
        c1 = await battle_service.resolve_battle(attacker.owner_id, first.owner_id, 500)
        c2 = await battle_service.resolve_battle(attacker.owner_id, second.owner_id, 500)
        assert isinstance(c1, Challenge) and isinstance(c2, Challenge)
        return attacker, (first, c1), (second, c2)

    return _open


@pytest.mark.integration
@pytest.mark.asyncio
class TestChallengeCooldowns:
    async def test_daily_limit_checked_on_accept(self, battle_service, two_challenges, guild_helpers, game_config):
        """Pending challenges cannot push the attacker past the daily limit."""
        # Arrange
        game_config.set("battle.global_cooldown_seconds", 0)
        game_config.set("battle.target_cooldown_seconds", 0)
        game_config.set("battle.daily_limit", 1)
        attacker, (first, c1), (second, c2) = await two_challenges()

        # Act
        await battle_service.accept_challenge(c1.challenge_id, first.owner_id)
        with pytest.raises(RateLimitError):
            await battle_service.accept_challenge(c2.challenge_id, second.owner_id)

        # Assert
        stored = await guild_helpers.load(attacker.id)
        assert stored.battles_today == 1
        assert stored.gold == 2500
        assert (await guild_helpers.load(second.id)).gold == 1000
        assert await guild_helpers.count(Battle) == 1
        assert len(battle_service.challenges) == 0

    async def test_global_cooldown_checked_on_accept(self, battle_service, two_challenges, guild_helpers):
        attacker, (first, c1), (second, c2) = await two_challenges()

        await battle_service.accept_challenge(c1.challenge_id, first.owner_id)
        with pytest.raises(CooldownActiveError) as exc_info:
            await battle_service.accept_challenge(c2.challenge_id, second.owner_id)

        assert exc_info.value.action == "battle"
        assert (await guild_helpers.load(attacker.id)).gold == 2500
        assert await guild_helpers.count(Battle) == 1


# ============================================================================
# REVENGE & COUNTER-ATTACK
# ============================================================================


async def lopsided_battle(battle_service, duel, rng):
    """Strong attacker loses a consent battle; the defender earns revenge."""
    attacker, defender, challenge = await open_challenge(battle_service, duel)
    rng.value = 0.99
    outcome = await battle_service.accept_challenge(challenge.challenge_id, defender.owner_id)
    rng.value = 0.0
    return attacker, defender, outcome


@pytest.mark.integration
@pytest.mark.asyncio
class TestFreeRevenge:
    async def test_revenge_takes_a_share_of_gold(self, battle_service, duel, guild_helpers, rng, events):
        # Arrange
        attacker, defender, original = await lopsided_battle(battle_service, duel, rng)

        # Act
        revenge = await battle_service.start_free_revenge(original.battle_id, defender.owner_id)

        # Assert
        assert revenge.is_free_revenge
        assert revenge.attacker_won
        assert revenge.bet == 0
        assert revenge.gold_transferred == 5
        assert (await guild_helpers.load(defender.id)).gold == 1505
        assert (await guild_helpers.load(attacker.id)).gold == 495
        assert (await guild_helpers.load(defender.id)).last_battle_at is None
        assert events.payloads("battle.resolved")[-1]["revenge_of_id"] == original.battle_id

    async def test_revenge_only_once(self, battle_service, duel, rng):
        _, defender, original = await lopsided_battle(battle_service, duel, rng)
        await battle_service.start_free_revenge(original.battle_id, defender.owner_id)

        with pytest.raises(InvalidOperationError):
            await battle_service.start_free_revenge(original.battle_id, defender.owner_id)

    async def test_only_defender_gets_revenge(self, battle_service, duel, rng):
        attacker, _, original = await lopsided_battle(battle_service, duel, rng)

        with pytest.raises(InvalidOperationError):
            await battle_service.start_free_revenge(original.battle_id, attacker.owner_id)

    async def test_window_closes(self, battle_service, duel, rng):
        _, defender, original = await lopsided_battle(battle_service, duel, rng)
        async with DatabaseService.get_transaction() as session:
            await session.execute(
                update(Battle)
                .where(Battle.id == original.battle_id)
                .values(created_at=utc_now() - timedelta(hours=2))
            )

        with pytest.raises(InvalidOperationError) as exc_info:
            await battle_service.start_free_revenge(original.battle_id, defender.owner_id)
        assert "window" in exc_info.value.reason

    async def test_revenge_survives_power_drift(self, battle_service, duel, guild_helpers, rng):
        """A challenge accepted after the gap narrowed still counts as consent tier."""
        attacker, defender, challenge = await open_challenge(battle_service, duel)
        await guild_helpers.update(defender.id, adventurer_count=40)
        rng.value = 0.99

        outcome = await battle_service.accept_challenge(challenge.challenge_id, defender.owner_id)

        assert outcome.risk_tier is RiskTier.CONSENT
        assert outcome.attacker_power / outcome.defender_power < 5
        assert outcome.revenge_eligible
        rng.value = 0.0
        revenge = await battle_service.start_free_revenge(outcome.battle_id, defender.owner_id)
        assert revenge.is_free_revenge

    async def test_even_battle_grants_no_revenge(self, battle_service, duel):
        attacker, defender = await duel()
        outcome = await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 200)

        assert not outcome.revenge_eligible
        with pytest.raises(InvalidOperationError):
            await battle_service.start_free_revenge(outcome.battle_id, defender.owner_id)


@pytest.mark.integration
@pytest.mark.asyncio
class TestCounterAttack:
    async def test_counter_attack_reuses_bet(self, battle_service, duel, guild_helpers):
        attacker, defender = await duel()
        original = await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 200)

        counter = await battle_service.counter_attack(original.battle_id, defender.owner_id)

        assert counter.attacker_id == defender.id
        assert counter.bet == 200
        assert (await guild_helpers.load(attacker.id)).gold == 1000
        assert (await guild_helpers.load(defender.id)).gold == 1000

    async def test_only_defender_counters(self, battle_service, duel):
        attacker, defender = await duel()
        original = await battle_service.resolve_battle(attacker.owner_id, defender.owner_id, 200)

        with pytest.raises(InvalidOperationError):
            await battle_service.counter_attack(original.battle_id, attacker.owner_id)
