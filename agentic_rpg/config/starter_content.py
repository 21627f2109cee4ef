# ABOUTME: Built-in starter content: the default adventurer, the starting tavern and nearby scenes.
# ABOUTME: Used when a session is created without a saved character or a known scene.

from agentic_rpg.models.entities import (
    NPC,
    AttackProfile,
    CanonicalFact,
    Character,
    Exit,
    HitPoints,
    Location,
    Scene,
)

STARTING_SCENE_ID = "tavern_start"


def default_character(name: str = "Adventurer") -> Character:
    """A fresh level 1 adventurer"""
    return Character(
        name=name,
        abilities={"STR": 12, "DEX": 14, "CON": 13, "INT": 11, "WIS": 15, "CHA": 10},
        proficiencies=["Stealth", "Perception", "Investigation"],
        saving_throw_proficiencies=["DEX", "WIS"],
        hp=HitPoints(current=25, max=25),
        armor_class=13,
        resources={"gold": 50, "torches": 3},
        attack=AttackProfile(name="shortsword", ability="DEX", damage="1d6+2", damage_type="piercing"),
    )


def starting_scene() -> Scene:
    return Scene(
        id=STARTING_SCENE_ID,
        title="The Crossed Swords Tavern",
        synopsis="A warm, inviting tavern where adventures begin",
        canonical_facts=[
            CanonicalFact(
                description="The fireplace crackles warmly in the corner",
                contradictions=["the cold hearth", "the fireplace is dark"],
            ),
            CanonicalFact(
                description="The barkeep is a stout dwarf named Thorin",
                contradictions=["thorin the elf", "the elven barkeep", "the human barkeep"],
            ),
            CanonicalFact(description="Adventurers often gather here seeking companions"),
        ],
        tags=["tavern", "starting_location", "social"],
        npcs=[
            NPC(id="thorin_barkeep", name="Thorin", role="barkeep", disposition="helpful",
                hp=HitPoints(current=30, max=30), armor_class=12),
            NPC(id="rowdy_patron", name="Rowdy Patron", role="patron", disposition="hostile",
                hp=HitPoints(current=9, max=9), armor_class=11, tags=["brawler"]),
        ],
        exits=[
            Exit(direction="north", target_scene_id="forest_path", description="A door to the forest road"),
            Exit(direction="down", target_scene_id="tavern_cellar", description="Stairs to the cellar"),
        ],
    )


def forest_path_scene() -> Scene:
    return Scene(
        id="forest_path",
        title="The Old Forest Road",
        synopsis="A rutted road winding under ancient oaks",
        canonical_facts=[
            CanonicalFact(
                description="The road is overgrown and rarely travelled",
                contradictions=["the busy road", "crowds of travellers"],
            ),
        ],
        tags=["forest", "wilderness"],
        npcs=[
            NPC(id="goblin_scout", name="Goblin Scout", role="scout", disposition="hostile",
                hp=HitPoints(current=7, max=7), armor_class=13, tags=["goblin"]),
        ],
        exits=[Exit(direction="south", target_scene_id=STARTING_SCENE_ID)],
    )


def tavern_cellar_scene() -> Scene:
    return Scene(
        id="tavern_cellar",
        title="The Tavern Cellar",
        synopsis="A damp cellar of casks and cobwebs",
        canonical_facts=[
            CanonicalFact(description="Barrels of Thorin's ale line the walls"),
        ],
        tags=["dungeon", "cellar"],
        npcs=[
            NPC(id="giant_rat", name="Giant Rat", role="vermin", disposition="hostile",
                hp=HitPoints(current=4, max=4), armor_class=12),
        ],
        exits=[Exit(direction="up", target_scene_id=STARTING_SCENE_ID)],
    )


def starter_scenes() -> list[Scene]:
    return [starting_scene(), forest_path_scene(), tavern_cellar_scene()]


def starter_locations() -> list[Location]:
    return [
        Location(
            id="crossed_swords_tavern",
            name="The Crossed Swords",
            description="A tavern that has stood for over 200 years",
            tags=["tavern", "safe_haven"],
            keywords=["tavern", "crossed swords", "inn"],
            canonical_facts=[
                "The Crossed Swords has stood for over 200 years",
                "It's known as a meeting place for adventurers",
            ],
        ),
        Location(
            id="old_forest",
            name="The Old Forest",
            description="Ancient woods north of the tavern",
            tags=["forest"],
            keywords=["forest", "woods", "oaks"],
        ),
    ]
