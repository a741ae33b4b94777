"""
Action Resolver.

Turns a submitted verb into rules outcomes. The resolver checks turn
legality, incapacitation and the action economy, then calls into the dice,
condition, damage and spell engines and mutates the ledger.

Outside active combat the action economy isn't consumed; spell slots and
hit points still are.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from arbiter.core.combat_session import CombatSession
from arbiter.core.conditions import (
    Condition,
    ConditionType,
    can_move,
    is_incapacitated,
)
from arbiter.core.creature import ActionResource, CreatureState
from arbiter.core.damage import deal_damage
from arbiter.core.death_saves import DeathSaveOutcome, roll_death_save
from arbiter.core.dice import roll_d20, roll_damage
from arbiter.core.errors import (
    CombatNotActiveError,
    CombatantNotFoundError,
    IncapacitatedError,
    NotYourTurnError,
    RuleViolationError,
    UnknownVerbError,
    ValidationError,
)
from arbiter.core.reference import UNARMED_STRIKE, MonsterAction, ReferenceSnapshot, WeaponRef
from arbiter.core.rules_engine import resolve_attack_roll, roll_saving_throw
from arbiter.core.spell_system import (
    apply_spell_conditions,
    is_healing_spell,
    resolve_area_effect,
    resolve_cast,
    roll_spell_healing,
    spell_attack_bonus,
    spell_damage_dice,
    spell_save_dc,
)

logger = logging.getLogger("arbiter.actions")


class ActionVerb(str, Enum):
    ATTACK = "attack"
    OFFHAND_ATTACK = "offhand_attack"
    CAST = "cast"
    MOVE = "move"
    DASH = "dash"
    DISENGAGE = "disengage"
    DODGE = "dodge"
    HELP = "help"
    HIDE = "hide"
    READY = "ready"
    STAND = "stand"
    REACTION = "reaction"
    DEATH_SAVE = "death_save"
    END_TURN = "end_turn"


ALLOWED_VERBS = [v.value for v in ActionVerb]

# Verbs an incapacitated creature can still use
INCAPACITATED_VERBS = {ActionVerb.DEATH_SAVE, ActionVerb.END_TURN}


@dataclass
class ActionRequest:
    """A submitted action, as parsed from the API."""
    actor_id: str
    verb: str
    description: str = ""
    target_id: Optional[str] = None
    target_ids: List[str] = field(default_factory=list)
    movement_feet: Optional[int] = None
    spell_slug: Optional[str] = None
    slot_level: Optional[int] = None
    is_ritual: bool = False


@dataclass
class ActionContext:
    actor: CreatureState
    roster: Dict[str, CreatureState]
    characters: Dict[str, CreatureState]
    session: Optional[CombatSession]
    now: datetime

    @property
    def in_combat(self) -> bool:
        return (
            self.session is not None
            and self.session.is_active
            and self.session.find_entry(self.actor.id) is not None
        )


@dataclass
class ActionOutcome:
    """Everything a stateless caller needs to pick its next move."""
    verb: str
    actor_id: str
    narration: str = ""
    rolls: List[Dict[str, Any]] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)
    actor: Dict[str, Any] = field(default_factory=dict)
    targets: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    touched: List[str] = field(default_factory=list)
    session: Optional[Dict[str, Any]] = None
    turn_change: Optional[Dict[str, Any]] = None

    def touch(self, *creature_ids: str) -> None:
        for cid in creature_ids:
            if cid not in self.touched:
                self.touched.append(cid)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "verb": self.verb,
            "actor_id": self.actor_id,
            "narration": self.narration,
            "rolls": list(self.rolls),
            "details": dict(self.details),
            "actor": self.actor,
            "targets": dict(self.targets),
            "session": self.session,
            "turn_change": self.turn_change,
        }


class ActionResolver:
    """Dispatches verbs to handlers. Holds the reference snapshot, nothing else."""

    def __init__(self, reference: ReferenceSnapshot):
        self.reference = reference
        self._handlers: Dict[ActionVerb, Callable[[ActionContext, ActionRequest, ActionOutcome], None]] = {
            ActionVerb.ATTACK: self._attack,
            ActionVerb.OFFHAND_ATTACK: self._attack,
            ActionVerb.REACTION: self._attack,
            ActionVerb.CAST: self._cast,
            ActionVerb.MOVE: self._move,
            ActionVerb.DASH: self._dash,
            ActionVerb.DISENGAGE: self._disengage,
            ActionVerb.DODGE: self._dodge,
            ActionVerb.HELP: self._help,
            ActionVerb.HIDE: self._hide,
            ActionVerb.READY: self._ready,
            ActionVerb.STAND: self._stand,
            ActionVerb.DEATH_SAVE: self._death_save,
            ActionVerb.END_TURN: self._end_turn,
        }

    @staticmethod
    def parse_verb(raw: str) -> ActionVerb:
        try:
            return ActionVerb((raw or "").strip().lower())
        except ValueError:
            raise UnknownVerbError(raw, ALLOWED_VERBS)

    def resolve(
        self,
        request: ActionRequest,
        characters: Dict[str, CreatureState],
        session: Optional[CombatSession],
        now: datetime,
    ) -> ActionOutcome:
        """
        Resolve one action.

        Args:
            request: The submitted action
            characters: Every character in the actor's lobby, by id
            session: The lobby's combat session, if any
            now: Request time (turn timestamps)
        """
        verb = self.parse_verb(request.verb)
        roster = session.roster(characters) if session is not None else dict(characters)
        actor = roster.get(request.actor_id)
        if actor is None:
            raise CombatantNotFoundError(request.actor_id)

        ctx = ActionContext(actor=actor, roster=roster, characters=characters, session=session, now=now)
        self._check_turn(ctx, verb)
        self._check_can_act(ctx, verb)

        outcome = ActionOutcome(verb=verb.value, actor_id=actor.id)
        self._handlers[verb](ctx, request, outcome)

        outcome.actor = actor.snapshot()
        outcome.targets = {
            cid: roster[cid].snapshot() for cid in outcome.touched if cid != actor.id and cid in roster
        }
        if session is not None:
            outcome.session = session.pointer()
        logger.info("%s: %s -> %s", actor.name, verb.value, outcome.narration)
        return outcome

    # ------------------------------------------------------------ legality

    def _check_turn(self, ctx: ActionContext, verb: ActionVerb) -> None:
        session = ctx.session
        if session is None or not session.is_active:
            return
        session.check_pointer()
        if session.find_entry(ctx.actor.id) is None:
            raise RuleViolationError(
                f"{ctx.actor.name} is not part of the current combat",
                rule="not_in_combat",
                details={"combatant_id": ctx.actor.id},
                recovery_hint="Ask the GM to add you to the turn order",
            )
        current = session.current_entry
        if verb == ActionVerb.REACTION:
            if current.combatant_id == ctx.actor.id:
                raise RuleViolationError(
                    "Reactions are taken on another creature's turn",
                    rule="reaction_timing",
                    details={"current_turn": current.combatant_id},
                    recovery_hint="Use the attack verb on your own turn",
                )
        elif current.combatant_id != ctx.actor.id:
            raise NotYourTurnError(current.name)

    def _check_can_act(self, ctx: ActionContext, verb: ActionVerb) -> None:
        if verb in INCAPACITATED_VERBS:
            return
        if ctx.actor.is_dead:
            raise IncapacitatedError(ctx.actor.name, ["Dead"])
        incapacitated, reasons = is_incapacitated(ctx.actor.conditions)
        if incapacitated:
            raise IncapacitatedError(ctx.actor.name, reasons)

    def _spend(self, ctx: ActionContext, resource: ActionResource, amount: int = 0) -> None:
        if ctx.in_combat:
            ctx.actor.consume_action_resource(resource, amount)

    def _target(self, ctx: ActionContext, request: ActionRequest, required: bool = True) -> Optional[CreatureState]:
        target_id = request.target_id or (request.target_ids[0] if request.target_ids else None)
        if target_id is None:
            if required:
                raise ValidationError("target_id", "This action needs a target")
            return None
        target = ctx.roster.get(target_id)
        if target is None:
            raise CombatantNotFoundError(target_id)
        return target

    # ------------------------------------------------------------ attacks

    def _monster_action(self, actor: CreatureState, description: str) -> Optional[MonsterAction]:
        ref = self.reference.get_monster(actor.monster_slug)
        if ref is None or not ref.actions:
            return None
        text = (description or "").lower()
        matches = [a for a in ref.actions if a.name.lower() in text]
        if matches:
            return max(matches, key=lambda a: len(a.name))
        return ref.actions[0]

    def _weapon(self, description: str) -> WeaponRef:
        return self.reference.find_weapon_in_text(description) or UNARMED_STRIKE

    def _attack(self, ctx: ActionContext, request: ActionRequest, outcome: ActionOutcome) -> None:
        """Attack, off-hand attack and opportunity attack (reaction)."""
        actor = ctx.actor
        verb = ActionVerb(outcome.verb)
        target = self._target(ctx, request)
        if target.id == actor.id:
            raise ValidationError("target_id", "A creature can't attack itself", target.id)
        if target.is_dead:
            raise RuleViolationError(f"{target.name} is already dead", rule="target_dead", details={"target_id": target.id})

        monster_action = self._monster_action(actor, request.description) if actor.is_monster else None
        if monster_action is not None and verb != ActionVerb.OFFHAND_ATTACK:
            name = monster_action.name
            attack_bonus = monster_action.attack_bonus
            damage_dice = monster_action.damage_dice
            damage_type = monster_action.damage_type
            damage_mod = 0
            is_melee = monster_action.is_melee
            magical = monster_action.magical
        else:
            weapon = self._weapon(request.description)
            ability = "dexterity" if weapon.uses_dexterity else "strength"
            ability_mod = actor.ability_modifier(ability)
            name = weapon.name
            attack_bonus = ability_mod + actor.proficiency_bonus
            damage_dice = weapon.damage_dice
            damage_type = weapon.damage_type
            damage_mod = ability_mod
            is_melee = not weapon.is_ranged
            magical = weapon.magical

            if verb == ActionVerb.OFFHAND_ATTACK:
                if ctx.in_combat and not actor.turn.attack_action_taken:
                    raise RuleViolationError(
                        "An off-hand attack requires taking the Attack action first",
                        rule="offhand_attack",
                        recovery_hint="Attack with your main weapon first",
                    )
                if not weapon.has_property("light"):
                    raise RuleViolationError(
                        f"{weapon.name} is not a light weapon",
                        rule="offhand_attack",
                        details={"weapon": weapon.slug},
                        recovery_hint="Off-hand attacks need a light melee weapon",
                    )
                # No positive ability modifier on off-hand damage
                damage_mod = min(0, ability_mod)

        if verb == ActionVerb.ATTACK:
            self._spend(ctx, ActionResource.ACTION)
            actor.turn.attack_action_taken = True
        elif verb == ActionVerb.OFFHAND_ATTACK:
            self._spend(ctx, ActionResource.BONUS_ACTION)
        else:
            self._spend(ctx, ActionResource.REACTION)

        attack = resolve_attack_roll(actor, target, attack_bonus, is_melee=is_melee)
        outcome.rolls.append({"type": "attack", **attack.to_dict()})
        outcome.touch(target.id)
        self._after_attack(actor)

        label = "opportunity attack" if verb == ActionVerb.REACTION else "attack"
        if not attack.hit:
            reason = " (natural 1)" if attack.roll.natural_1 else ""
            outcome.narration = (
                f"{actor.name}'s {label} with {name} misses {target.name}: "
                f"{attack.roll.total} vs AC {target.armor_class}{reason}"
            )
            return

        damage = roll_damage(damage_dice, critical=attack.critical, modifier=damage_mod)
        outcome.rolls.append({"type": "damage", **damage.to_dict()})
        report = deal_damage(
            target, damage.total, damage_type, ctx.roster,
            critical=attack.critical, is_magical=magical,
        )
        outcome.details["damage"] = report.to_dict()
        outcome.touch(*(r["creature_id"] for r in report.released))

        crit = " Critical hit!" if attack.critical else ""
        outcome.narration = (
            f"{actor.name}'s {label} with {name} hits {target.name} "
            f"({attack.roll.total} vs AC {target.armor_class}) for {report.final_amount} {damage_type} damage.{crit}"
            + self._damage_suffix(target, report)
        )

    @staticmethod
    def _after_attack(actor: CreatureState) -> None:
        """Attacking gives away a hiding spot and uses up help."""
        actor.remove_condition(Condition(ConditionType.HIDDEN))
        actor.remove_condition(Condition(ConditionType.HELPED))

    @staticmethod
    def _damage_suffix(target: CreatureState, report) -> str:
        if report.outcome.died:
            return f" {target.name} dies."
        if report.outcome.dropped_to_zero:
            return f" {target.name} falls unconscious."
        if report.concentration and not report.concentration["maintained"]:
            return f" {target.name} loses concentration on {report.concentration['spell']}."
        return ""

    # ------------------------------------------------------------ spells

    def _cast(self, ctx: ActionContext, request: ActionRequest, outcome: ActionOutcome) -> None:
        actor = ctx.actor
        spell = self.reference.get_spell(request.spell_slug) if request.spell_slug else None
        if spell is None and not request.spell_slug:
            spell = self.reference.find_spell_in_text(request.description)
        if spell is None:
            raise ValidationError(
                "spell_slug",
                "Could not identify the spell; pass spell_slug or name the spell in the description",
                request.spell_slug,
            )

        target_ids = list(request.target_ids) or ([request.target_id] if request.target_id else [])
        targets = []
        for tid in target_ids:
            if tid not in ctx.roster:
                raise CombatantNotFoundError(tid)
            targets.append(ctx.roster[tid])
        if self._needs_target(spell):
            self._spell_target(targets, spell.name)

        # Slot and economy are spent only once the targets check out.
        cast = resolve_cast(
            actor, spell.slug, self.reference,
            requested_slot_level=request.slot_level,
            is_ritual=request.is_ritual,
            enforce_economy=ctx.in_combat,
        )
        outcome.details["cast"] = cast.to_dict()
        slot_level = None if spell.is_cantrip else cast.effective_level
        level_text = "" if spell.is_cantrip else f" at level {cast.effective_level}"
        parts = [f"{actor.name} casts {spell.name}{level_text}."]
        if cast.concentration_dropped:
            parts.append(f"Concentration on {cast.concentration_dropped} ends.")

        if spell.area and targets:
            area = resolve_area_effect(actor, spell, targets, ctx.roster, slot_level=slot_level)
            outcome.details["area"] = area.to_dict()
            if area.rolled:
                outcome.rolls.append({"type": "damage" if spell.damage_dice else "healing", **area.rolled.to_dict()})
            outcome.touch(*(t.target_id for t in area.targets))
            for t in area.targets:
                outcome.touch(*(r["creature_id"] for r in t.released))
            if spell.damage_dice:
                parts.append(f"{len(targets)} creature(s) caught for {area.total_damage} total damage.")
            else:
                parts.append(f"{len(targets)} creature(s) affected.")

        elif is_healing_spell(spell):
            target = targets[0] if targets else actor
            healing = roll_spell_healing(spell, actor, slot_level)
            outcome.rolls.append({"type": "healing", **healing.to_dict()})
            healed = target.apply_healing(healing.total)
            outcome.details["healing"] = healed.to_dict()
            outcome.touch(target.id)
            parts.append(f"{target.name} regains {healed.healed} HP.")
            if healed.regained_consciousness:
                parts.append(f"{target.name} regains consciousness.")

        elif spell.attack_type:
            target = self._spell_target(targets, spell.name)
            attack = resolve_attack_roll(actor, target, spell_attack_bonus(actor), is_melee=spell.attack_type == "melee")
            outcome.rolls.append({"type": "spell_attack", **attack.to_dict()})
            outcome.touch(target.id)
            self._after_attack(actor)
            if attack.hit:
                parts.append(self._spell_damage(ctx, spell, target, slot_level, outcome, critical=attack.critical))
            else:
                parts.append(f"The spell misses {target.name} ({attack.roll.total} vs AC {target.armor_class}).")

        elif spell.save_ability:
            target = self._spell_target(targets, spell.name)
            dc = spell_save_dc(actor)
            save = roll_saving_throw(target, spell.save_ability, dc)
            outcome.rolls.append({"type": "save", **save.to_dict()})
            outcome.touch(target.id)
            verdict = "succeeds" if save.success else "fails"
            parts.append(f"{target.name} {verdict} a DC {dc} {save.ability} save.")
            if spell.damage_dice and (not save.success or spell.half_on_save):
                parts.append(self._spell_damage(ctx, spell, target, slot_level, outcome, halved=save.success))
            if spell.conditions_applied and not save.success and not target.is_dead:
                applied = apply_spell_conditions(spell, actor, target, ctx.roster)
                outcome.details["conditions_applied"] = applied["applied"]
                outcome.touch(*(r["creature_id"] for r in applied["released"]))
                if applied["applied"]:
                    parts.append(f"{target.name} is now {', '.join(applied['applied'])}.")

        elif spell.auto_hit and spell.damage_dice:
            target = self._spell_target(targets, spell.name)
            outcome.touch(target.id)
            parts.append(self._spell_damage(ctx, spell, target, slot_level, outcome))

        elif targets:
            outcome.touch(*(t.id for t in targets))

        outcome.narration = " ".join(p for p in parts if p)

    @staticmethod
    def _needs_target(spell) -> bool:
        """Attacks, saves and auto-hit damage; area spells too when nobody is caught."""
        if is_healing_spell(spell):
            return False
        return bool(spell.attack_type or spell.save_ability or (spell.auto_hit and spell.damage_dice))

    @staticmethod
    def _spell_target(targets: List[CreatureState], spell_name: str) -> CreatureState:
        if not targets:
            raise ValidationError("target_id", f"{spell_name} needs a target")
        return targets[0]

    def _spell_damage(
        self,
        ctx: ActionContext,
        spell,
        target: CreatureState,
        slot_level: Optional[int],
        outcome: ActionOutcome,
        critical: bool = False,
        halved: bool = False,
    ) -> str:
        dice = spell_damage_dice(spell, ctx.actor.level, slot_level)
        damage = roll_damage(dice, critical=critical)
        outcome.rolls.append({"type": "damage", **damage.to_dict()})
        amount = damage.total // 2 if halved else damage.total
        report = deal_damage(target, amount, spell.damage_type or "", ctx.roster, critical=critical, is_magical=True)
        outcome.details["damage"] = report.to_dict()
        outcome.touch(*(r["creature_id"] for r in report.released))
        crit = " Critical hit!" if critical else ""
        return (
            f"{target.name} takes {report.final_amount} {spell.damage_type} damage.{crit}"
            + self._damage_suffix(target, report)
        )

    # ------------------------------------------------------------ movement

    def _move(self, ctx: ActionContext, request: ActionRequest, outcome: ActionOutcome) -> None:
        actor = ctx.actor
        feet = request.movement_feet
        if feet is None or feet <= 0:
            raise ValidationError("movement_feet", "Movement must be a positive number of feet", feet)

        movable, reasons = can_move(actor.conditions)
        if not movable:
            raise RuleViolationError(
                f"{actor.name} can't move",
                rule="speed_zero",
                details={"reasons": reasons},
            )

        prone = actor.has_condition(ConditionType.PRONE)
        cost = feet * 2 if prone else feet
        self._spend(ctx, ActionResource.MOVEMENT, cost)
        outcome.details["movement"] = {
            "feet": feet,
            "cost": cost,
            "crawling": prone,
            "remaining": actor.turn.movement_remaining if ctx.in_combat else None,
        }
        crawl = " crawling" if prone else ""
        where = f": {request.description}" if request.description else ""
        outcome.narration = f"{actor.name} moves {feet} ft{crawl}{where}."

    def _dash(self, ctx: ActionContext, request: ActionRequest, outcome: ActionOutcome) -> None:
        actor = ctx.actor
        self._spend(ctx, ActionResource.ACTION)
        gained = actor.effective_speed
        if ctx.in_combat:
            actor.turn.movement_remaining += gained
        outcome.details["movement_gained"] = gained
        outcome.narration = f"{actor.name} dashes, gaining {gained} ft of movement."

    def _stand(self, ctx: ActionContext, request: ActionRequest, outcome: ActionOutcome) -> None:
        actor = ctx.actor
        if not actor.has_condition(ConditionType.PRONE):
            raise RuleViolationError(f"{actor.name} is not prone", rule="stand")
        movable, reasons = can_move(actor.conditions)
        if not movable:
            raise RuleViolationError(f"{actor.name} can't stand up", rule="speed_zero", details={"reasons": reasons})
        cost = actor.effective_speed // 2
        self._spend(ctx, ActionResource.MOVEMENT, cost)
        actor.remove_condition(Condition(ConditionType.PRONE))
        outcome.details["movement_cost"] = cost
        outcome.narration = f"{actor.name} stands up, using {cost} ft of movement."

    # --------------------------------------------------- standard actions

    def _take_condition_action(
        self,
        ctx: ActionContext,
        outcome: ActionOutcome,
        kind: ConditionType,
        narration: str,
    ) -> None:
        self._spend(ctx, ActionResource.ACTION)
        ctx.actor.add_condition(Condition(kind))
        outcome.narration = narration

    def _disengage(self, ctx: ActionContext, request: ActionRequest, outcome: ActionOutcome) -> None:
        self._take_condition_action(
            ctx, outcome, ConditionType.DISENGAGED,
            f"{ctx.actor.name} disengages; moving won't provoke opportunity attacks this turn.",
        )

    def _dodge(self, ctx: ActionContext, request: ActionRequest, outcome: ActionOutcome) -> None:
        self._take_condition_action(
            ctx, outcome, ConditionType.DODGING,
            f"{ctx.actor.name} dodges; attacks against them have disadvantage.",
        )

    def _ready(self, ctx: ActionContext, request: ActionRequest, outcome: ActionOutcome) -> None:
        trigger = request.description or "a trigger"
        outcome.details["trigger"] = request.description
        self._take_condition_action(
            ctx, outcome, ConditionType.READIED,
            f"{ctx.actor.name} readies an action for {trigger}.",
        )

    def _help(self, ctx: ActionContext, request: ActionRequest, outcome: ActionOutcome) -> None:
        actor = ctx.actor
        target = self._target(ctx, request)
        if target.id == actor.id:
            raise ValidationError("target_id", "Help targets an ally, not yourself", target.id)
        self._spend(ctx, ActionResource.ACTION)
        target.add_condition(Condition(ConditionType.HELPED, source_id=actor.id))
        outcome.touch(target.id)
        outcome.narration = f"{actor.name} helps {target.name}; their next attack roll has advantage."

    def _hide(self, ctx: ActionContext, request: ActionRequest, outcome: ActionOutcome) -> None:
        """Stealth check against the best passive Perception among other conscious creatures."""
        actor = ctx.actor
        self._spend(ctx, ActionResource.ACTION)
        stealth = roll_d20(actor.ability_modifier("dexterity") + actor.proficiency_bonus)
        observers = [
            c for c in ctx.roster.values()
            if c.id != actor.id and not c.is_dead and not is_incapacitated(c.conditions)[0]
        ]
        dc = max((10 + c.ability_modifier("wisdom") for c in observers), default=10)
        outcome.rolls.append({"type": "stealth", "dc": dc, **stealth.to_dict()})
        if stealth.total >= dc:
            actor.add_condition(Condition(ConditionType.HIDDEN))
            outcome.narration = f"{actor.name} hides (Stealth {stealth.total} vs {dc})."
        else:
            outcome.narration = f"{actor.name} fails to hide (Stealth {stealth.total} vs {dc})."
        outcome.details["hidden"] = stealth.total >= dc

    # ------------------------------------------------------- turn control

    def _death_save(self, ctx: ActionContext, request: ActionRequest, outcome: ActionOutcome) -> None:
        actor = ctx.actor
        if actor.is_dead:
            raise RuleViolationError(f"{actor.name} is dead", rule="death_save")
        if actor.current_hp > 0:
            raise RuleViolationError(f"{actor.name} is not dying", rule="death_save", details={"current_hp": actor.current_hp})
        if actor.death_saves.is_stable:
            raise RuleViolationError(f"{actor.name} is already stable", rule="death_save")

        result = roll_death_save(actor.death_saves)
        outcome.rolls.append({"type": "death_save", **result.to_dict()})
        outcome.details["death_save"] = result.to_dict()
        if result.outcome == DeathSaveOutcome.REVIVED:
            actor.apply_healing(1)
        elif result.outcome == DeathSaveOutcome.DEAD:
            actor.die()
        outcome.narration = f"{actor.name} makes a death saving throw: {result.description}."

    def _end_turn(self, ctx: ActionContext, request: ActionRequest, outcome: ActionOutcome) -> None:
        if not ctx.in_combat:
            raise CombatNotActiveError(ctx.actor.lobby_id)
        change = ctx.session.advance(ctx.characters, ctx.now)
        outcome.turn_change = change.to_dict()
        outcome.touch(change.current_id)
        nxt = ctx.roster.get(change.current_id)
        round_text = f" Round {change.round} begins." if change.new_round else ""
        outcome.narration = f"{ctx.actor.name} ends their turn.{round_text} It is now {nxt.name if nxt else change.current_id}'s turn."
