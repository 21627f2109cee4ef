# ABOUTME: Validates a proposed turn output against content policy, canon and game mechanics.
# ABOUTME: Errors block approval and send the turn back to planning; warnings are advisory only.

from loguru import logger

from agentic_rpg.config.settings import Settings
from agentic_rpg.models.entities import AgeRating, Character, Scene
from agentic_rpg.models.game_state import (
    CheckLogEntry,
    CombatLogEntry,
    SavingThrowLogEntry,
    StateUpdates,
    TurnOutput,
    ValidationVerdict,
)
from agentic_rpg.validation.content_policy import ContentPolicy

MIN_USUAL_DC = 5
MAX_USUAL_DC = 30
MAX_TIME_ADVANCE_HOURS = 24
MAX_FLAG_KEY_LENGTH = 50


class SafetyValidator:
    """
    Stateless turn-output validator.

    Each check appends zero or more messages to the error or warning list;
    the verdict is approved exactly when no check produced an error.
    """

    def __init__(
        self,
        policy: ContentPolicy | None = None,
        max_narration_words: int = 500,
        min_narration_words: int = 10,
        min_choices: int = 2,
        max_choices: int = 6,
        min_choice_length: int = 5,
        max_choice_length: int = 100,
        require_canonical_consistency: bool = True,
    ):
        self.policy = policy or ContentPolicy()
        self.max_narration_words = max_narration_words
        self.min_narration_words = min_narration_words
        self.min_choices = min_choices
        self.max_choices = max_choices
        self.min_choice_length = min_choice_length
        self.max_choice_length = max_choice_length
        self.require_canonical_consistency = require_canonical_consistency

    @classmethod
    def from_settings(cls, settings: Settings) -> "SafetyValidator":
        return cls(
            max_narration_words=settings.max_narration_words,
            min_narration_words=settings.min_narration_words,
            min_choices=settings.min_choices,
            max_choices=settings.max_choices,
            min_choice_length=settings.min_choice_length,
            max_choice_length=settings.max_choice_length,
        )

    def validate(
        self,
        output: TurnOutput,
        scene: Scene | None = None,
        character: Character | None = None,
        age_rating: AgeRating = AgeRating.TEEN,
    ) -> ValidationVerdict:
        """
        Validate one proposed turn output.

        Args:
            output: TurnOutput assembled by Reduce
            scene: Scene whose canonical facts apply
            character: Acting character, for roll ceilings and resources
            age_rating: Session content rating

        Returns:
            ValidationVerdict; approved iff errors is empty
        """
        errors: list[str] = []
        warnings: list[str] = []

        self._check_content(output, age_rating, errors, warnings)
        self._check_length(output, errors, warnings)
        if self.require_canonical_consistency:
            self._check_canon(output, scene, character, errors)
        self._check_mechanics(output, errors, warnings)
        self._check_state_updates(output.state_updates, character, errors, warnings)
        self._check_choices(output.choices, warnings)

        verdict = ValidationVerdict.from_findings(errors, warnings)
        if not verdict.approved:
            logger.warning(f"Validation rejected output: {verdict.errors}")
        elif verdict.warnings:
            logger.debug(f"Validation approved with warnings: {verdict.warnings}")
        return verdict

    def _check_content(self, output, age_rating, errors, warnings) -> None:
        violations = self.policy.scan(output.narration, age_rating)
        for choice in output.choices:
            violations.extend(self.policy.scan(choice, age_rating))

        if violations:
            errors.append("Content violates safety guidelines")
            for violation in violations:
                errors.append(f"Safety violation ({violation.category}): {violation.match}")

        if output.image_request is not None:
            findings = self.policy.image_prompt_findings(output.image_request.prompt)
            if findings:
                warnings.append("Image prompt may need adjustment")
                warnings.extend(f"Image safety: {finding}" for finding in findings)

    def _check_length(self, output, errors, warnings) -> None:
        word_count = len(output.narration.split())
        if word_count > self.max_narration_words:
            errors.append(
                f"Narration too long: {word_count} words (max: {self.max_narration_words})"
            )
        if word_count < self.min_narration_words:
            warnings.append(
                f"Narration is very short: {word_count} words (min: {self.min_narration_words})"
            )

    def _check_canon(self, output, scene, character, errors) -> None:
        if scene is not None:
            narration = output.narration.lower()
            for fact in scene.active_facts():
                for phrase in fact.contradictions:
                    if phrase.lower() in narration:
                        errors.append(f"Contradicts canonical fact: {fact.description}")

        if character is None:
            return

        for entry in output.action_log:
            if not isinstance(entry, CheckLogEntry):
                continue
            if entry.ability not in character.abilities:
                errors.append(f"Check uses unknown ability: {entry.ability}")
                continue
            # Proficiency counts only when the check applied it
            applied_bonus = min(entry.proficiency_bonus, character.proficiency_bonus)
            max_possible = 20 + character.ability_modifier(entry.ability) + applied_bonus
            if entry.total > max_possible:
                errors.append(f"Impossible roll result: {entry.total} > {max_possible}")

    def _check_mechanics(self, output, errors, warnings) -> None:
        for entry in output.action_log:
            if isinstance(entry, CheckLogEntry):
                self._check_d20("d20 roll", entry.roll, errors)
                if entry.total != entry.roll + entry.modifier:
                    errors.append(
                        f"Roll math error: {entry.total} != {entry.roll} + {entry.modifier}"
                    )
                if not MIN_USUAL_DC <= entry.dc <= MAX_USUAL_DC:
                    warnings.append(f"Unusual DC: {entry.dc}")

            elif isinstance(entry, CombatLogEntry):
                self._check_d20("attack roll", entry.to_hit_roll, errors)
                if entry.total != entry.to_hit_roll + entry.to_hit_modifier:
                    errors.append(
                        f"Attack math error: {entry.total} != "
                        f"{entry.to_hit_roll} + {entry.to_hit_modifier}"
                    )
                if entry.damage_total is not None and entry.damage_total < 0:
                    errors.append("Negative damage is not allowed")
                if entry.hit != (entry.damage_total is not None):
                    errors.append("Damage must be present exactly when an attack hits")

            elif isinstance(entry, SavingThrowLogEntry):
                self._check_d20("saving throw", entry.roll, errors)
                if entry.total != entry.roll + entry.modifier:
                    errors.append(
                        f"Saving throw math error: {entry.total} != {entry.roll} + {entry.modifier}"
                    )
                if entry.damage_total < 0:
                    errors.append("Negative damage is not allowed")

    @staticmethod
    def _check_d20(label: str, roll: int, errors: list[str]) -> None:
        if not 1 <= roll <= 20:
            errors.append(f"Invalid {label}: {roll}")

    def _check_state_updates(
        self,
        updates: StateUpdates,
        character: Character | None,
        errors: list[str],
        warnings: list[str],
    ) -> None:
        for key in updates.flags:
            if len(key) > MAX_FLAG_KEY_LENGTH:
                warnings.append(f"Very long flag key: {key}")

        if updates.time_advance < 0:
            errors.append("Cannot advance time backwards")
        elif updates.time_advance > MAX_TIME_ADVANCE_HOURS:
            warnings.append(f"Large time advance: {updates.time_advance} hours")

        if character is None:
            return

        if character.resources.get("gold", 0) + updates.gold_delta < 0:
            errors.append("Character cannot afford this transaction")

        for resource, delta in updates.resource_deltas.items():
            if character.resources.get(resource, 0) + delta < 0:
                errors.append(f"Resource would drop below zero: {resource}")

        for name in updates.items_remove:
            if not character.has_item(name):
                errors.append(f"Cannot remove missing item: {name}")

    def _check_choices(self, choices: list[str], warnings: list[str]) -> None:
        if len(choices) < self.min_choices:
            warnings.append("Consider providing more choices for player agency")
        if len(choices) > self.max_choices:
            warnings.append("Too many choices may overwhelm the player")

        seen: set[str] = set()
        duplicates = []
        for choice in choices:
            normalized = choice.strip().lower()
            if normalized in seen:
                duplicates.append(choice)
            seen.add(normalized)
        if duplicates:
            warnings.append(f"Duplicate choices: {', '.join(duplicates)}")

        for index, choice in enumerate(choices, start=1):
            if len(choice) > self.max_choice_length:
                warnings.append(f"Choice {index} is very long")
            if len(choice) < self.min_choice_length:
                warnings.append(f"Choice {index} is very short")
