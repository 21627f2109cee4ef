# ABOUTME: Prompt templates for LLM narration and the narration text used by the template narrator.
# ABOUTME: Includes revision guidance built from validation errors and the static recovery output.

NARRATION_SYSTEM_PROMPT = """
You are the narrator of a fantasy tabletop adventure rated {age_rating}.

RULES:
- Describe only what the dice results below establish. Never change a roll or its outcome.
- Keep narration between {min_words} and {max_words} words, second person, present tense.
- Stay consistent with the scene's established facts.
- Content must be suitable for a {age_rating} audience.

Respond with JSON: {{"narration": "...", "choices": ["...", "..."]}}
Offer {choice_count} short, distinct choices for what the player might do next.
"""

NARRATION_USER_PROMPT = """
SCENE: {scene_title}
SYNOPSIS: {scene_synopsis}
ESTABLISHED FACTS:
{facts}

CHARACTER: {character_name} (HP {hp_current}/{hp_max})
PLAYER ACTION: "{player_action}"

MECHANICAL RESULTS:
{results}
"""

REVISION_GUIDANCE = """
Your previous narration was rejected for these reasons:
{errors}
Rewrite it so none of these problems remain.
"""


def build_revision_guidance(errors: list[str]) -> str:
    """Guidance appended to the prompt when a turn is being re-planned"""
    if not errors:
        return ""
    return REVISION_GUIDANCE.format(errors="\n".join(f"- {error}" for error in errors))


SUCCESS_NARRATION = {
    "stealth": "You move silently through the shadows, and no one marks your passing.",
    "lockpick": "The lock gives way with a soft, satisfying click under your careful hands.",
    "climb": "You find solid holds and haul yourself up the obstacle with steady ease.",
    "persuade": "Your words carry weight and conviction, and you see resistance soften.",
    "deceive": "Your story holds together, and your listener nods along without suspicion.",
    "intimidate": "Your stare hardens, and the other party takes a wary step back.",
    "investigate": "Patient searching pays off as a telling detail reveals itself to you.",
    "perception": "Your senses sharpen, and you catch something others would have missed.",
    "default": "Your attempt succeeds admirably, and the moment turns in your favour.",
}

FAILURE_NARRATION = {
    "stealth": "A loose board creaks under your foot, and heads turn toward the sound.",
    "lockpick": "The pick slips and the stubborn lock refuses to yield to your efforts.",
    "climb": "Your grip slips on the stone and you slide back down, scraped and winded.",
    "persuade": "Your words fall flat, and your listener remains entirely unconvinced.",
    "deceive": "Your story wobbles, and you catch a flicker of doubt in their eyes.",
    "intimidate": "Your threat lands poorly, met with a shrug and a cool, level gaze.",
    "investigate": "You search carefully, but nothing useful turns up this time.",
    "perception": "Whatever was there slips past your notice, at least for now.",
    "default": "Despite your best efforts, things do not go quite the way you hoped.",
}

CRITICAL_SUCCESS_FLOURISH = "Fortune smiles on you, and the result is better than you dared hope."
CRITICAL_FAILURE_FLOURISH = "Luck deserts you at the worst possible moment."

ATTACK_HIT_NARRATION = (
    "You strike {target} with your {weapon}, dealing {damage} damage."
)
ATTACK_CRITICAL_NARRATION = (
    "A perfect opening! Your {weapon} lands squarely on {target} for a crushing {damage} damage."
)
ATTACK_MISS_NARRATION = "You swing at {target}, but your {weapon} finds only empty air."
TARGET_DEFEATED_NARRATION = "{target} staggers and falls, no longer able to fight."
NO_TARGET_NARRATION = (
    "You ready your weapon, but there is nothing here to fight. The moment passes quietly."
)

SAVE_SUCCESS_NARRATION = "You react in time and avoid the worst of the {effect}, taking {damage} damage."
SAVE_FAILURE_NARRATION = "The {effect} catches you full on, dealing {damage} damage."

EXPLORE_NARRATION = [
    "You take in {scene}. The air feels {mood}, and every corner seems to hold a story.",
    "Your attention settles on {scene}, where the atmosphere is {mood} and details wait to be noticed.",
    "You press on through {scene}. The mood is {mood}, and new possibilities open before you.",
]

MOODS = ["tense", "mysterious", "peaceful", "ominous", "hopeful"]

BASE_CHOICES = [
    "Examine your surroundings carefully",
    "Move forward cautiously",
    "Look for alternative paths",
]

RECOVERY_NARRATION = (
    "The mists of adventure swirl around you, obscuring the path for a moment. "
    "As they clear, new possibilities emerge and the way forward feels steady again."
)

RECOVERY_CHOICES = [
    "Take a moment to assess your surroundings",
    "Continue forward cautiously",
    "Look for a different approach",
]

RECOVERY_LOG_MESSAGE = "Recovering from an unexpected situation"

MODERATED_INPUT_NARRATION = (
    "The story holds its breath for a moment. {reason}. "
    "Try describing what your character does in another way."
)

IMAGE_PROMPT_TEMPLATE = (
    "[Style: painterly noir, muted palette]\n"
    "[Subjects: adventurer, {subjects}]\n"
    "[Setting: {setting}]\n"
    "[Key details: {details}]\n"
    "[Framing: medium wide, cinematic]\n"
    "[Do not include text]\n"
    "{setting}, {details}"
)
